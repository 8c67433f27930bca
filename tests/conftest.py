# tests/conftest.py
import threading
from pathlib import Path
from typing import Callable, Generator

import pytest
from steam.enums import EResult

from steam_icon_restorer.core import keyvalue
from steam_icon_restorer.core.auth_flows import AuthCredential, AuthFlow, AuthMethod
from steam_icon_restorer.core.callbacks import CallbackManager
from steam_icon_restorer.core.steam_session import (
    Connected,
    Disconnected,
    LoggedOn,
    ProductInfoResponse,
)


def write_library_folders(steam_path: Path, libraries: list[Path]) -> Path:
    """Write a libraryfolders.vdf listing ``libraries`` in order."""
    entries = []
    for index, library in enumerate(libraries):
        escaped = str(library).replace("\\", "\\\\")
        entries.append(
            f'\t"{index}"\n\t{{\n\t\t"path"\t\t"{escaped}"\n\t\t"label"\t\t""\n'
            f'\t\t"apps"\n\t\t{{\n\t\t}}\n\t}}\n'
        )
    vdf_path = steam_path / "steamapps" / "libraryfolders.vdf"
    vdf_path.parent.mkdir(parents=True, exist_ok=True)
    vdf_path.write_text('"libraryfolders"\n{\n' + "".join(entries) + "}\n", encoding="utf-8")
    return vdf_path


def write_manifest(library: Path, app_id: int, name: str | None = None) -> Path:
    """Write a minimal appmanifest_<app_id>.acf."""
    lines = ['"AppState"', "{", f'\t"appid"\t\t"{app_id}"', '\t"StateFlags"\t\t"4"']
    if name is not None:
        lines.append(f'\t"name"\t\t"{name}"')
    lines.append(f'\t"installdir"\t\t"game{app_id}"')
    lines.append("}")

    manifest = library / "steamapps" / f"appmanifest_{app_id}.acf"
    manifest.parent.mkdir(parents=True, exist_ok=True)
    manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest


def appinfo_text(app_id: int, clienticon: str | None = None, with_common: bool = True) -> str:
    """PICS appinfo text for one app."""
    body = [f'\t"appid"\t\t"{app_id}"']
    if with_common:
        body.append('\t"common"\n\t{')
        body.append(f'\t\t"name"\t\t"Game {app_id}"')
        if clienticon is not None:
            body.append(f'\t\t"clienticon"\t\t"{clienticon}"')
        body.append("\t}")
    return '"appinfo"\n{\n' + "\n".join(body) + "\n}\n"


@pytest.fixture
def steam_install(tmp_path) -> Path:
    """An empty Steam install directory."""
    steam_path = tmp_path / "Steam"
    (steam_path / "steamapps").mkdir(parents=True)
    return steam_path


@pytest.fixture
def pumped_callbacks() -> Generator[CallbackManager, None, None]:
    """A CallbackManager with a pump thread running for the test's duration."""
    callbacks = CallbackManager()
    stop = threading.Event()

    def pump() -> None:
        while not stop.is_set():
            callbacks.run_wait_callbacks(0.05)

    thread = threading.Thread(target=pump, daemon=True)
    thread.start()
    yield callbacks
    stop.set()
    thread.join(2)


class FakeSteamSession:
    """In-memory SteamSession that answers commands with events."""

    def __init__(
        self,
        callbacks: CallbackManager,
        *,
        connect_ok: bool = True,
        logon_result: EResult = EResult.OK,
        appinfo: dict[int, str | None] | None = None,
        unknown_apps: tuple[int, ...] = (),
        on_request: Callable[[int], None] | None = None,
    ) -> None:
        self.callbacks = callbacks
        self.connect_ok = connect_ok
        self.logon_result = logon_result
        self.appinfo = appinfo or {}
        self.unknown_apps = set(unknown_apps)
        self.on_request = on_request
        self.calls: list[str] = []
        self.product_requests: list[int] = []
        self.credential: AuthCredential | None = None
        self.closed = False

    def connect(self) -> None:
        self.calls.append("connect")
        if self.connect_ok:
            self.callbacks.post(Connected())
        else:
            self.callbacks.post(Disconnected(user_initiated=False))

    def disconnect(self) -> None:
        self.calls.append("disconnect")
        self.callbacks.post(Disconnected(user_initiated=True))

    def login(self, credential: AuthCredential) -> None:
        self.calls.append("login")
        self.credential = credential
        self.callbacks.post(LoggedOn(result=self.logon_result, steam_id=76561198000000000))

    def log_off(self) -> None:
        self.calls.append("log_off")
        self.callbacks.post(Disconnected(user_initiated=True))

    def request_product_info(self, app_id: int) -> None:
        self.calls.append("request_product_info")
        self.product_requests.append(app_id)
        if self.on_request is not None:
            self.on_request(app_id)

        if app_id in self.unknown_apps:
            self.callbacks.post(ProductInfoResponse(unknown_apps=frozenset({app_id})))
            return

        text = self.appinfo.get(app_id)
        if text is None:
            # Steam never answers
            return
        self.callbacks.post(ProductInfoResponse(apps={app_id: keyvalue.loads(text)}))

    def begin_qr_auth(self, device_name: str):
        raise NotImplementedError

    def begin_credentials_auth(self, username, password, **kwargs):
        raise NotImplementedError

    def close(self) -> None:
        self.calls.append("close")
        self.closed = True


class StaticAuthFlow(AuthFlow):
    """Auth flow that returns a fixed credential or raises."""

    method = AuthMethod.QR

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    def produce_credential(self, session, stop_event=None) -> AuthCredential:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AuthCredential(method=self.method, account_name="tester", refresh_token="rt_456")


@pytest.fixture
def fake_session_factory() -> Callable[..., FakeSteamSession]:
    return FakeSteamSession
