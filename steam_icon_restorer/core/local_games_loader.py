# steam_icon_restorer/core/local_games_loader.py

"""
Scans local Steam library folders to find installed games.

This module reads Steam's appmanifest_*.acf files across all library folders
and turns each readable manifest into a GameRecord. A broken manifest only
costs that one game; the scan always continues.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from steam_icon_restorer.core import keyvalue
from steam_icon_restorer.core.game import GameRecord, unknown_game_name

logger = logging.getLogger("steamicons.local_loader")

__all__ = ["MANIFEST_GLOB", "get_installed_games", "parse_manifest"]

MANIFEST_GLOB = "appmanifest_*.acf"


def get_installed_games(library_folders: Iterable[Path]) -> list[GameRecord]:
    """
    Reads all installed games from appmanifest_*.acf files across all libraries.

    Libraries are scanned in the given order and manifests within a library
    in file-name order. Games present in several libraries are reported once
    per library.

    Args:
        library_folders: The library roots returned by get_library_folders().

    Returns:
        list[GameRecord]: One record per readable manifest.
    """
    games: list[GameRecord] = []

    for library in library_folders:
        steamapps = Path(library) / "steamapps"
        if not steamapps.is_dir():
            continue

        manifests = sorted(steamapps.glob(MANIFEST_GLOB))
        for manifest in manifests:
            try:
                record = parse_manifest(manifest)
            except keyvalue.KeyValueParseError as e:
                logger.warning("Warning: Failed to read manifest file %s: %s", manifest, e)
                continue

            if record is not None:
                games.append(record)

        if manifests:
            logger.debug("Found %d manifest(s) in %s", len(manifests), library)

    return games


def parse_manifest(manifest_path: Path) -> GameRecord | None:
    """
    Parses a single appmanifest_*.acf file.

    Args:
        manifest_path (Path): Path to the appmanifest file.

    Returns:
        GameRecord | None: The record, or None if the manifest has no
        usable ``appid``.

    Raises:
        KeyValueParseError: If the file cannot be read or is malformed.
    """
    document = keyvalue.load(manifest_path)

    app_id_str = document.get("appid")
    if app_id_str is None:
        logger.debug("Manifest without appid, skipping: %s", manifest_path)
        return None

    try:
        app_id = int(app_id_str.strip())
    except ValueError:
        logger.debug("Manifest with invalid appid %r, skipping: %s", app_id_str, manifest_path)
        return None
    if app_id < 0:
        return None

    name = document.get("name")
    return GameRecord(app_id=app_id, name=name if name else unknown_game_name(app_id), manifest_path=manifest_path)
