"""
Configuration - Windows, Linux & macOS Auto-Detection
Includes the timeouts and CDN template used by the icon pipeline.
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger("steamicons.config")


__all__ = ["Config", "config"]


@dataclass
class Config:
    """
    Central configuration handling for the application.
    Values can be overridden from the environment or a .env file.
    """

    STEAM_PATH: Path | None = None

    # Credentials for non-interactive runs (never written anywhere)
    STEAM_USERNAME: str | None = None
    STEAM_PASSWORD: str | None = None

    # Friendly name shown in the Steam Mobile App and device list
    DEVICE_NAME: str = "SteamIconRestorer"

    # Seconds
    METADATA_TIMEOUT: float = 10.0
    DOWNLOAD_TIMEOUT: float = 30.0
    CALLBACK_WAIT: float = 1.0
    LOGOFF_GRACE: float = 2.0

    ICON_URL_TEMPLATE: str = (
        "https://cdn.cloudflare.steamstatic.com/steamcommunity/public/images/apps/{app_id}/{icon}.ico"
    )

    def __post_init__(self):
        """Load overrides from the environment after instantiation."""
        load_dotenv()

        env_path = os.getenv("STEAM_PATH")
        if env_path and not self.STEAM_PATH:
            self.STEAM_PATH = Path(env_path)

        self.STEAM_USERNAME = os.getenv("STEAM_USERNAME", self.STEAM_USERNAME)
        self.STEAM_PASSWORD = os.getenv("STEAM_PASSWORD", self.STEAM_PASSWORD)

    def icon_url(self, app_id: int, icon: str) -> str:
        """CDN URL of a game's client icon."""
        return self.ICON_URL_TEMPLATE.format(app_id=app_id, icon=icon)

    @staticmethod
    def icon_path(steam_path: Path, icon: str) -> Path:
        """Where Steam expects a client icon inside the install directory."""
        return Path(steam_path) / "steam" / "games" / f"{icon}.ico"

    @staticmethod
    def find_steam_path() -> Path | None:
        """Auto-detect the Steam path on Windows, Linux and macOS."""
        system = platform.system()

        if system == "Windows":
            try:
                import winreg

                key = winreg.OpenKey(winreg.HKEY_CURRENT_USER, r"Software\Valve\Steam")
                path_str, _ = winreg.QueryValueEx(key, "SteamPath")
                path = Path(path_str)
                if path.is_dir():
                    return path
            except OSError:
                logger.debug("Steam registry key not found, trying default locations")

            program_files = [
                os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)"),
                os.environ.get("ProgramFiles", r"C:\Program Files"),
            ]
            for base in program_files:
                candidate = Path(base) / "Steam"
                if candidate.is_dir():
                    return candidate

        elif system == "Darwin":
            candidate = Path.home() / "Library" / "Application Support" / "Steam"
            if candidate.is_dir():
                return candidate

        else:
            # Linux detection
            paths = [
                Path.home() / ".steam" / "steam",
                Path.home() / ".local" / "share" / "Steam",
                Path("/usr/share/steam"),
                Path("/usr/local/share/steam"),
            ]
            for p in paths:
                if p.is_dir():
                    return p.resolve() if p.is_symlink() else p

        return None


# Global instance
config = Config()
