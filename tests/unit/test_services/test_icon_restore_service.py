# tests/unit/test_services/test_icon_restore_service.py

"""Unit tests for IconRestoreService: icon lookup, download and batch isolation."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import FakeSteamSession, appinfo_text
from steam_icon_restorer.core import keyvalue
from steam_icon_restorer.core.game import GameRecord
from steam_icon_restorer.services.icon_restore_service import (
    DownloadOutcome,
    IconRestoreService,
    extract_client_icon,
)

GET = "steam_icon_restorer.services.icon_restore_service.requests.get"
ICON_BYTES = b"\x00\x00\x01\x00fake-ico"


def game(app_id: int) -> GameRecord:
    return GameRecord(app_id=app_id, name=f"Game {app_id}", manifest_path=Path(f"appmanifest_{app_id}.acf"))


def ok_response(content: bytes = ICON_BYTES) -> MagicMock:
    response = MagicMock()
    response.content = content
    response.raise_for_status.return_value = None
    return response


def make_service(steam_install, session, callbacks, **kwargs) -> tuple[IconRestoreService, MagicMock]:
    refresh = MagicMock(return_value=True)
    kwargs.setdefault("metadata_timeout", 1.0)
    service = IconRestoreService(steam_install, session, callbacks, refresh_shell=refresh, **kwargs)
    return service, refresh


class TestExtractClientIcon:
    """Tests for reading common/clienticon."""

    def test_reads_token(self):
        assert extract_client_icon(keyvalue.loads(appinfo_text(10, "abc123"))) == "abc123"

    def test_missing_common_section(self):
        assert extract_client_icon(keyvalue.loads(appinfo_text(10, with_common=False))) is None

    def test_missing_or_blank_token(self):
        assert extract_client_icon(keyvalue.loads(appinfo_text(10))) is None
        assert extract_client_icon(keyvalue.loads(appinfo_text(10, "   "))) is None

    def test_rejects_path_like_token(self):
        """Tokens that are not plain file names are never used as paths."""
        assert extract_client_icon(keyvalue.loads(appinfo_text(10, "../../evil"))) is None


class TestResolveIcon:
    """Tests for the bounded metadata lookup."""

    def test_resolves_from_reply(self, steam_install, pumped_callbacks):
        session = FakeSteamSession(pumped_callbacks, appinfo={10: appinfo_text(10, "abc123")})
        service, _ = make_service(steam_install, session, pumped_callbacks)

        result = service.resolve_icon(10)

        assert result.app_id == 10
        assert result.icon_token == "abc123"
        assert pumped_callbacks.subscription_count() == 0

    def test_unknown_app_resolves_to_none(self, steam_install, pumped_callbacks):
        session = FakeSteamSession(pumped_callbacks, unknown_apps=(10,))
        service, _ = make_service(steam_install, session, pumped_callbacks)

        assert service.resolve_icon(10).icon_token is None

    def test_ignores_replies_for_other_apps(self, steam_install, pumped_callbacks):
        """A reply about another app does not complete this lookup."""
        session = FakeSteamSession(pumped_callbacks, appinfo={20: appinfo_text(20, "other")})
        session.appinfo[10] = None
        session.on_request = lambda app_id: session.request_product_info(20) if app_id == 10 else None
        service, _ = make_service(steam_install, session, pumped_callbacks, metadata_timeout=0.2)

        assert service.resolve_icon(10).icon_token is None

    def test_timeout_gives_up(self, steam_install, pumped_callbacks, caplog):
        """No reply within the timeout resolves to no icon and logs a warning."""
        session = FakeSteamSession(pumped_callbacks, appinfo={10: None})
        service, _ = make_service(steam_install, session, pumped_callbacks, metadata_timeout=0.1)

        with caplog.at_level(logging.WARNING, logger="steamicons"):
            result = service.resolve_icon(10)

        assert result.icon_token is None
        assert "Timeout waiting for app info for AppID 10" in caplog.text
        assert pumped_callbacks.subscription_count() == 0

    def test_request_error_gives_up(self, steam_install, pumped_callbacks):
        session = MagicMock()
        session.request_product_info.side_effect = ConnectionError("gone")
        service, _ = make_service(steam_install, session, pumped_callbacks)

        assert service.resolve_icon(10).icon_token is None
        assert pumped_callbacks.subscription_count() == 0


class TestDownloadIcon:
    """Tests for CDN download and the on-disk layout."""

    def test_writes_icon_into_steam_games(self, steam_install, pumped_callbacks):
        service, _ = make_service(steam_install, MagicMock(), pumped_callbacks, download_timeout=5)

        with patch(GET, return_value=ok_response()) as get:
            outcome = service.download_icon(10, "abc123")

        assert outcome == DownloadOutcome(10, True)
        assert get.call_args.args[0] == (
            "https://cdn.cloudflare.steamstatic.com/steamcommunity/public/images/apps/10/abc123.ico"
        )
        assert get.call_args.kwargs["timeout"] == 5
        assert (steam_install / "steam" / "games" / "abc123.ico").read_bytes() == ICON_BYTES

    def test_overwrites_existing_icon(self, steam_install, pumped_callbacks):
        target = steam_install / "steam" / "games" / "abc123.ico"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"old")
        service, _ = make_service(steam_install, MagicMock(), pumped_callbacks)

        with patch(GET, return_value=ok_response()):
            assert service.download_icon(10, "abc123").success

        assert target.read_bytes() == ICON_BYTES

    def test_http_error_writes_nothing(self, steam_install, pumped_callbacks):
        response = ok_response()
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        service, _ = make_service(steam_install, MagicMock(), pumped_callbacks)

        with patch(GET, return_value=response):
            outcome = service.download_icon(10, "abc123")

        assert not outcome.success
        assert "Failed to download icon for AppID 10" in outcome.message
        assert not (steam_install / "steam" / "games" / "abc123.ico").exists()

    def test_network_error_writes_nothing(self, steam_install, pumped_callbacks):
        service, _ = make_service(steam_install, MagicMock(), pumped_callbacks)

        with patch(GET, side_effect=requests.Timeout("timed out")):
            assert not service.download_icon(10, "abc123").success

        assert not (steam_install / "steam" / "games").exists()

    def test_write_error_is_a_failure(self, steam_install, pumped_callbacks):
        # A file where the games directory should be
        (steam_install / "steam").write_bytes(b"")
        service, _ = make_service(steam_install, MagicMock(), pumped_callbacks)

        with patch(GET, return_value=ok_response()):
            outcome = service.download_icon(10, "abc123")

        assert not outcome.success
        assert "Error saving icon for AppID 10" in outcome.message


class TestRestore:
    """Tests for the batch pipeline."""

    def test_mixed_batch_counts_and_order(self, steam_install, pumped_callbacks, caplog):
        """Every game is attempted in order and success + failure == total."""
        session = FakeSteamSession(
            pumped_callbacks,
            appinfo={
                10: appinfo_text(10, "icon10"),
                20: appinfo_text(20, with_common=False),
                30: None,
                40: appinfo_text(40, "icon40"),
                50: appinfo_text(50, "icon50"),
            },
        )
        service, refresh = make_service(steam_install, session, pumped_callbacks, metadata_timeout=0.2)

        def fake_get(url, timeout):
            if "icon40" in url:
                raise requests.ConnectionError("reset")
            return ok_response()

        with patch(GET, side_effect=fake_get) as get:
            with caplog.at_level(logging.INFO, logger="steamicons"):
                summary = service.restore([game(10), game(20), game(30), game(40), game(50)])

        assert session.product_requests == [10, 20, 30, 40, 50]
        assert get.call_count == 3
        assert [o.app_id for o in summary.outcomes] == [10, 20, 30, 40, 50]
        assert [o.success for o in summary.outcomes] == [True, False, False, False, True]
        assert (summary.total, summary.success_count, summary.failure_count) == (5, 2, 3)

        games_dir = steam_install / "steam" / "games"
        assert sorted(p.name for p in games_dir.iterdir()) == ["icon10.ico", "icon50.ico"]

        assert "[1/5] Game 10 (AppID: 10)... [OK]" in caplog.text
        assert "[2/5] Game 20 (AppID: 20)... [SKIPPED - no icon available]" in caplog.text
        assert "[3/5] Game 30 (AppID: 30)... [SKIPPED - no icon available]" in caplog.text
        assert "[4/5] Game 40 (AppID: 40)... [FAILED - download error]" in caplog.text
        assert "Successful: 2" in caplog.text
        assert "Failed/Skipped: 3" in caplog.text
        refresh.assert_called_once()

    def test_no_common_section_makes_no_http_request(self, steam_install, pumped_callbacks):
        session = FakeSteamSession(pumped_callbacks, appinfo={10: appinfo_text(10, with_common=False)})
        service, refresh = make_service(steam_install, session, pumped_callbacks)

        with patch(GET) as get:
            summary = service.restore([game(10)])

        get.assert_not_called()
        assert summary.failure_count == 1
        refresh.assert_not_called()

    def test_empty_batch(self, steam_install, pumped_callbacks):
        service, refresh = make_service(steam_install, MagicMock(), pumped_callbacks)

        summary = service.restore([])

        assert (summary.total, summary.success_count, summary.failure_count) == (0, 0, 0)
        refresh.assert_not_called()

    def test_lookups_are_sequential(self, steam_install, pumped_callbacks):
        """The next request is only sent once the previous game is finished."""
        in_flight = []
        session = FakeSteamSession(
            pumped_callbacks,
            appinfo={10: appinfo_text(10, "a"), 20: appinfo_text(20, "b")},
            on_request=lambda app_id: in_flight.append(pumped_callbacks.subscription_count()),
        )
        service, _ = make_service(steam_install, session, pumped_callbacks)

        with patch(GET, return_value=ok_response()):
            service.restore([game(10), game(20)])

        assert in_flight == [1, 1]

    def test_stopped_session_fails_remaining_games(self, steam_install, pumped_callbacks, caplog):
        stop_event = threading.Event()
        session = FakeSteamSession(
            pumped_callbacks,
            appinfo={10: appinfo_text(10, "a"), 20: appinfo_text(20, "b")},
            on_request=lambda app_id: stop_event.set(),
        )
        service, _ = make_service(steam_install, session, pumped_callbacks, stop_event=stop_event)

        with patch(GET, return_value=ok_response()):
            with caplog.at_level(logging.INFO, logger="steamicons"):
                summary = service.restore([game(10), game(20)])

        assert session.product_requests == [10]
        assert (summary.success_count, summary.failure_count) == (1, 1)
        assert "[2/2] Game 20 (AppID: 20)... [FAILED - not connected]" in caplog.text


@pytest.mark.parametrize("icon", ["abc123", "ABC_def-9"])
def test_icon_path_layout(steam_install, pumped_callbacks, icon):
    service, _ = make_service(steam_install, MagicMock(), pumped_callbacks)

    with patch(GET, return_value=ok_response()):
        service.download_icon(1, icon)

    assert (steam_install / "steam" / "games" / f"{icon}.ico").is_file()
