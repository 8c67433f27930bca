"""Allows ``python -m steam_icon_restorer``."""

import sys

from steam_icon_restorer.main import main

sys.exit(main())
