# steam_icon_restorer/services/icon_restore_service.py

"""
Resolves and downloads client icons for installed games.

For every game, in discovery order:
1. Ask Steam (PICS) for the app's product info and wait a bounded time.
2. Read ``common/clienticon`` from the reply.
3. Download ``<clienticon>.ico`` from the Steam CDN into
   ``<steam>/steam/games/``, where the Steam client looks for it.

A game that has no icon, times out or fails to download is counted and the
batch carries on with the next game.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import requests

from steam_icon_restorer.config import config
from steam_icon_restorer.core.callbacks import CallbackManager, CompletionSignal
from steam_icon_restorer.core.game import GameRecord
from steam_icon_restorer.core.keyvalue import KeyValueNode
from steam_icon_restorer.core.steam_session import ProductInfoResponse, SteamSession
from steam_icon_restorer.services.shell_refresh import refresh_icon_cache

logger = logging.getLogger("steamicons.icon_restore")

__all__ = [
    "DownloadOutcome",
    "IconResolutionResult",
    "IconRestoreService",
    "RestoreSummary",
    "extract_client_icon",
]

# clienticon values are content hashes; anything else could escape the icon folder
_ICON_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class IconResolutionResult:
    app_id: int
    icon_token: str | None


@dataclass(frozen=True)
class DownloadOutcome:
    app_id: int
    success: bool
    message: str | None = None


@dataclass
class RestoreSummary:
    """Counters for one pipeline run. Outcomes are kept in processing order."""

    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    outcomes: list[DownloadOutcome] = field(default_factory=list)

    def add(self, outcome: DownloadOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.success:
            self.success_count += 1
        else:
            self.failure_count += 1


def extract_client_icon(appinfo: KeyValueNode) -> str | None:
    """
    Reads the client icon token from a PICS appinfo tree.

    Args:
        appinfo: The parsed appinfo document for one app.

    Returns:
        str | None: The token, or None if there is no ``common`` section or
        the token is empty or not a plain file name.
    """
    common = appinfo.find_child("common")
    if common is None:
        return None

    icon = (common.get("clienticon") or "").strip()
    if not icon:
        return None

    if not _ICON_TOKEN_RE.match(icon):
        logger.debug("Ignoring malformed clienticon %r", icon)
        return None
    return icon


class IconRestoreService:
    """Runs the resolve/download pipeline over a list of games.

    Requires a logged-on session: the pipeline never logs on by itself.
    """

    def __init__(
        self,
        steam_path: Path,
        session: SteamSession,
        callbacks: CallbackManager,
        *,
        stop_event: threading.Event | None = None,
        metadata_timeout: float | None = None,
        download_timeout: float | None = None,
        refresh_shell: Callable[[], bool] = refresh_icon_cache,
    ) -> None:
        self.steam_path = Path(steam_path)
        self.session = session
        self.callbacks = callbacks
        self.stop_event = stop_event
        self.metadata_timeout = config.METADATA_TIMEOUT if metadata_timeout is None else metadata_timeout
        self.download_timeout = config.DOWNLOAD_TIMEOUT if download_timeout is None else download_timeout
        self._refresh_shell = refresh_shell

    def restore(self, games: Sequence[GameRecord]) -> RestoreSummary:
        """
        Processes every game in order and reports the totals.

        Args:
            games: Games in manifest discovery order.

        Returns:
            RestoreSummary: One outcome per game.
        """
        logger.info("")
        logger.info("Starting icon restoration process...")

        summary = RestoreSummary(total=len(games))

        for index, game in enumerate(games, start=1):
            prefix = f"[{index}/{summary.total}] {game.name} (AppID: {game.app_id})..."

            if self.stop_event is not None and self.stop_event.is_set():
                summary.add(DownloadOutcome(game.app_id, False, "Steam session ended"))
                logger.info("%s [FAILED - not connected]", prefix)
                continue

            resolution = self.resolve_icon(game.app_id)
            if resolution.icon_token is None:
                summary.add(DownloadOutcome(game.app_id, False, "No icon available"))
                logger.info("%s [SKIPPED - no icon available]", prefix)
                continue

            outcome = self.download_icon(game.app_id, resolution.icon_token)
            summary.add(outcome)
            if outcome.success:
                logger.info("%s [OK]", prefix)
            else:
                logger.info("%s [FAILED - download error]", prefix)

        self._log_summary(summary)

        if summary.success_count > 0:
            self._refresh_shell()

        return summary

    def resolve_icon(self, app_id: int) -> IconResolutionResult:
        """
        Asks Steam for the app's product info and extracts its client icon.

        Waits at most ``metadata_timeout`` seconds. A late reply is ignored
        because the handler is unsubscribed by then.

        Args:
            app_id: The app to look up.

        Returns:
            IconResolutionResult: ``icon_token`` is None when there is no icon,
            the lookup timed out, or the request failed.
        """
        signal: CompletionSignal[str | None] = CompletionSignal()

        def on_product_info(event: ProductInfoResponse) -> None:
            if app_id in event.apps:
                signal.try_set(extract_client_icon(event.apps[app_id]))
            elif app_id in event.unknown_apps:
                signal.try_set(None)

        with self.callbacks.subscribe(ProductInfoResponse, on_product_info):
            try:
                self.session.request_product_info(app_id)
                icon = signal.wait(self.metadata_timeout)
            except TimeoutError:
                logger.warning("Timeout waiting for app info for AppID %s", app_id)
                icon = None
            except Exception as e:
                logger.warning("Error requesting app info for AppID %s: %s", app_id, e)
                icon = None

        return IconResolutionResult(app_id=app_id, icon_token=icon)

    def download_icon(self, app_id: int, icon: str) -> DownloadOutcome:
        """
        Downloads one icon from the CDN and writes it into the Steam folder.

        Nothing is written unless the download succeeded.

        Args:
            app_id: The app the icon belongs to.
            icon: The client icon token.

        Returns:
            DownloadOutcome: Success, or failure with the reason.
        """
        icon_url = config.icon_url(app_id, icon)
        icon_path = config.icon_path(self.steam_path, icon)

        try:
            response = requests.get(icon_url, timeout=self.download_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            message = f"Failed to download icon for AppID {app_id}: {e}"
            logger.warning(message)
            return DownloadOutcome(app_id, False, message)

        try:
            icon_path.parent.mkdir(parents=True, exist_ok=True)
            icon_path.write_bytes(response.content)
        except OSError as e:
            message = f"Error saving icon for AppID {app_id}: {e}"
            logger.warning(message)
            return DownloadOutcome(app_id, False, message)

        logger.debug("Saved %s", icon_path)
        return DownloadOutcome(app_id, True)

    @staticmethod
    def _log_summary(summary: RestoreSummary) -> None:
        logger.info("")
        logger.info("=" * 60)
        logger.info("Icon restoration complete:")
        logger.info("  Successful: %d", summary.success_count)
        logger.info("  Failed/Skipped: %d", summary.failure_count)
        logger.info("  Total: %d", summary.total)
        logger.info("=" * 60)
