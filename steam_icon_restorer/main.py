#!/usr/bin/env python3
"""Steam Icon Restorer - Main Entry Point (command line)."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
import traceback
from pathlib import Path
from typing import Callable, Sequence

from steam_icon_restorer.config import config
from steam_icon_restorer.core.auth_flows import AuthFlow, CredentialsAuthFlow, QrAuthFlow
from steam_icon_restorer.core.callbacks import CallbackManager
from steam_icon_restorer.core.game import GameRecord
from steam_icon_restorer.core.library_folders import get_library_folders
from steam_icon_restorer.core.local_games_loader import get_installed_games
from steam_icon_restorer.core.logging import logger, setup_logging
from steam_icon_restorer.core.steam_session import SteamClientSession, SteamSession
from steam_icon_restorer.core.steam_session_manager import SteamSessionManager
from steam_icon_restorer.services.icon_restore_service import IconRestoreService, RestoreSummary
from steam_icon_restorer.version import __app_name__, __version__

__all__ = ["main"]

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

SessionFactory = Callable[[CallbackManager], SteamSession]


def build_parser() -> argparse.ArgumentParser:
    """Builds the command line parser."""
    parser = argparse.ArgumentParser(
        prog="steam-icon-restorer",
        description="Steam Icon Restorer - Restore game icons on Steam",
    )
    parser.add_argument("-u", "--username", "--user", help="Steam username (required for credentials auth)")
    parser.add_argument("-p", "--password", "--pass", help="Steam password (required for credentials auth)")
    parser.add_argument(
        "-q",
        "--use-qr-code",
        "--qr",
        action="store_true",
        help="Use QR Code to authenticate instead of username/password (recommended)",
    )
    parser.add_argument(
        "-s",
        "--steam-install-path",
        "--steam-path",
        help="Path to Steam installation directory (auto-detected if not specified)",
    )
    parser.add_argument("-i", "--interactive", action="store_true", help="Run in interactive mode with prompts")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output (prints stack traces on errors)"
    )
    parser.add_argument("--log-file", type=Path, help="Also write a detailed log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_header() -> None:
    logger.info("")
    logger.info("=" * 40)
    logger.info("     %s v%s", __app_name__, __version__)
    logger.info("=" * 40)
    logger.info("")


def discover_games(steam_path: Path) -> list[GameRecord]:
    """
    Reads the library folders and every installed game's manifest.

    Raises:
        FileNotFoundError: If libraryfolders.vdf is missing.
        LibraryFoldersError: If libraryfolders.vdf is malformed.
    """
    libraries = get_library_folders(steam_path)

    logger.info("Discovering installed games...")
    games = get_installed_games(libraries)
    logger.info("Found %d installed games.", len(games))
    return games


def build_auth_flow(use_qr_code: bool, username: str | None, password: str | None) -> AuthFlow:
    if use_qr_code:
        return QrAuthFlow()
    return CredentialsAuthFlow(username, password)


def execute(
    username: str | None,
    password: str | None,
    use_qr_code: bool,
    steam_path: Path,
    verbose: bool,
    session_factory: SessionFactory = SteamClientSession,
) -> int:
    """
    Runs discovery, login and the icon pipeline.

    Everything that can fail without the network (install path, library
    folders, credentials) is checked before connecting.

    Returns:
        int: The process exit code.
    """
    try:
        games = discover_games(steam_path)
        auth_flow = build_auth_flow(use_qr_code, username, password)

        callbacks = CallbackManager()
        manager = SteamSessionManager(session_factory(callbacks), callbacks, auth_flow)

        def restore_icons(active: SteamSessionManager) -> RestoreSummary:
            service = IconRestoreService(
                steam_path, active.session, active.callbacks, stop_event=active.stop_event
            )
            return service.restore(games)

        manager.run(restore_icons)
        return EXIT_OK

    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return EXIT_INTERRUPTED
    except Exception as e:
        if verbose:
            logger.error(traceback.format_exc())
        else:
            logger.error("Error: %s", e)
        return EXIT_ERROR


def run_interactive(verbose: bool = False) -> int:
    """Asks for the install path, auth method and credentials, then runs."""
    logger.info("Running in interactive mode...")
    logger.info("")

    steam_path = config.STEAM_PATH or config.find_steam_path()

    if steam_path is not None:
        logger.info("Detected Steam installation at: %s", steam_path)
        response = input("Use this path? (Y/n): ").strip().lower()
        if response in ("n", "no"):
            steam_path = Path(input("Enter Steam installation path: ").strip())
    else:
        logger.info("Could not auto-detect Steam installation.")
        entered = input("Enter Steam installation path: ").strip()
        steam_path = Path(entered) if entered else None

    if steam_path is None or not steam_path.is_dir():
        logger.error("Error: Invalid Steam installation path.")
        return EXIT_ERROR

    logger.info("")
    logger.info("Authentication Methods:")
    logger.info("  1. QR Code")
    logger.info("  2. Username & Password")
    use_qr_code = input("Choose method (1 or 2): ").strip() != "2"

    username = password = None
    if not use_qr_code:
        username = input("Username: ").strip()
        password = getpass.getpass("Password: ")

    logger.info("")
    return execute(username, password, use_qr_code, steam_path, verbose)


def main(argv: Sequence[str] | None = None) -> int:
    """Main application execution flow."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(args_list)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    print_header()

    if args.interactive or not args_list:
        try:
            return run_interactive(args.verbose)
        except (KeyboardInterrupt, EOFError):
            logger.error("Interrupted.")
            return EXIT_INTERRUPTED

    steam_path_str = args.steam_install_path
    if steam_path_str:
        steam_path = Path(steam_path_str)
    else:
        logger.info("Steam installation path not specified. Attempting auto-detection...")
        steam_path = config.STEAM_PATH or config.find_steam_path()
        if steam_path is None:
            logger.error("Error: Could not auto-detect Steam installation path.")
            logger.error("Please specify it using --steam-install-path flag.")
            return EXIT_ERROR
        logger.info("Found Steam at: %s", steam_path)

    if not steam_path.is_dir():
        logger.error("Error: Steam installation path does not exist: %s", steam_path)
        return EXIT_ERROR

    username = args.username or config.STEAM_USERNAME
    password = args.password or config.STEAM_PASSWORD
    if not args.use_qr_code and (not username or not password):
        logger.error("Error: Username and password are required when not using QR Code authentication.")
        logger.error("Use --use-qr-code flag for QR authentication, or provide --username and --password.")
        return EXIT_ERROR

    return execute(username, password, args.use_qr_code, steam_path, args.verbose)


if __name__ == "__main__":
    sys.exit(main())
