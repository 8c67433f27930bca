# steam_icon_restorer/core/game.py

"""Record types shared by the manifest reader and the icon pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

__all__ = ["GameRecord", "unknown_game_name"]


def unknown_game_name(app_id: int) -> str:
    """Placeholder display name for manifests without a ``name`` key."""
    return f"Unknown Game ({app_id})"


@dataclass(frozen=True)
class GameRecord:
    """An installed game discovered from an appmanifest file.

    Attributes:
        app_id: The Steam app ID.
        name: Display name from the manifest, or a placeholder.
        manifest_path: The appmanifest_*.acf file the record came from.
    """

    app_id: int
    name: str
    manifest_path: Path

    def __str__(self) -> str:
        return f"{self.name} (AppID: {self.app_id})"
