# steam_icon_restorer/core/library_folders.py

"""
Discovers Steam library folders from libraryfolders.vdf.

Steam keeps one entry per library location under the ``libraryfolders``
root. Each entry carries a ``path`` key; the entries themselves are keyed
"0", "1", ... (or "LibraryFolders" style names in older clients).
"""

from __future__ import annotations

import logging
from pathlib import Path

from steam_icon_restorer.core import keyvalue
from steam_icon_restorer.core.errors import LibraryFoldersError

logger = logging.getLogger("steamicons.library_folders")

__all__ = ["LIBRARY_FOLDERS_ROOT", "get_library_folders", "library_folders_path"]

LIBRARY_FOLDERS_ROOT = "libraryfolders"


def library_folders_path(steam_path: Path) -> Path:
    """Returns the location of libraryfolders.vdf inside a Steam install."""
    return Path(steam_path) / "steamapps" / "libraryfolders.vdf"


def get_library_folders(steam_path: Path) -> list[Path]:
    """
    Reads libraryfolders.vdf and returns every library root that exists.

    Entries are returned in file order. Entries without a ``path`` key or
    whose path does not exist on disk are skipped.

    Args:
        steam_path (Path): The Steam installation directory.

    Returns:
        list[Path]: The library roots.

    Raises:
        FileNotFoundError: If libraryfolders.vdf does not exist.
        LibraryFoldersError: If the file is unreadable, malformed, or its
            root key is not ``libraryfolders``.
    """
    vdf_path = library_folders_path(steam_path)
    if not vdf_path.is_file():
        raise FileNotFoundError(f"Library folders file not found at: {vdf_path}")

    try:
        document = keyvalue.load(vdf_path)
    except keyvalue.KeyValueParseError as e:
        raise LibraryFoldersError(f"Failed to read library folders file: {e}") from e

    if document.name != LIBRARY_FOLDERS_ROOT:
        raise LibraryFoldersError("Invalid library folders file format")

    libraries: list[Path] = []
    for entry in document:
        path_str = entry.get("path")
        if not path_str:
            continue

        path_obj = Path(path_str)
        if path_obj.is_dir():
            libraries.append(path_obj)
        else:
            logger.debug("Library path does not exist, skipping: %s", path_str)

    logger.debug("Found %d library folder(s) in %s", len(libraries), vdf_path)
    return libraries
