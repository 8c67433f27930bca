# steam_icon_restorer/services/shell_refresh.py

"""
Refreshes the desktop icon cache after new icons were written.

Only Windows needs this: Explorer caches shortcut icons and keeps showing
the blank ones until it is restarted. Failures are reported as warnings;
the icons are on disk either way.
"""

from __future__ import annotations

import logging
import platform
import subprocess

import psutil

logger = logging.getLogger("steamicons.shell_refresh")

__all__ = ["refresh_icon_cache", "restart_explorer"]

EXPLORER_EXE = "explorer.exe"
EXIT_WAIT_SECONDS = 5


def refresh_icon_cache() -> bool:
    """Restarts the desktop shell where that is needed to pick up new icons.

    Returns:
        True if the shell was restarted.
    """
    if platform.system() != "Windows":
        logger.debug("Icon cache refresh not needed on %s", platform.system())
        return False
    return restart_explorer()


def restart_explorer() -> bool:
    """Kills the running Explorer process and starts a fresh one.

    Returns:
        True on success, False if anything went wrong.
    """
    logger.info("Restarting Windows Explorer to refresh icons...")

    try:
        for proc in psutil.process_iter(["name"]):
            name = (proc.info.get("name") or "").lower()
            if name == EXPLORER_EXE:
                proc.kill()
                proc.wait(timeout=EXIT_WAIT_SECONDS)
                break

        subprocess.Popen([EXPLORER_EXE])
    except (psutil.Error, OSError, subprocess.SubprocessError) as e:
        logger.warning("Warning: Failed to restart Explorer: %s", e)
        logger.warning("You may need to restart Explorer manually for icons to refresh.")
        return False

    logger.info("Explorer restarted successfully.")
    return True
