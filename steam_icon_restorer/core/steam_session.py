# steam_icon_restorer/core/steam_session.py

"""
The connection to Steam's CM servers, seen from the rest of the application.

SteamSession is the boundary the session manager and the icon pipeline talk
to: a handful of commands plus events posted into a CallbackManager.
SteamClientSession implements it on top of ``steam.client.SteamClient``.
That client is gevent based, so it lives on its own network thread; commands
from other threads are queued onto that thread and client events are posted
into the CallbackManager for the pump thread to deliver.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol

from steam.client import SteamClient
from steam.core.msg import MsgProto
from steam.enums import EOSType, EResult
from steam.enums.emsg import EMsg
from steam.steamid import SteamID

from steam_icon_restorer.core import keyvalue
from steam_icon_restorer.core.callbacks import CallbackManager
from steam_icon_restorer.core.keyvalue import KeyValueNode
from steam_icon_restorer.core.steam_auth import Authenticator, CredentialsAuthSession, QrAuthSession

if TYPE_CHECKING:
    from steam_icon_restorer.core.auth_flows import AuthCredential

logger = logging.getLogger("steamicons.steam_session")

__all__ = [
    "Connected",
    "Disconnected",
    "LoggedOff",
    "LoggedOn",
    "ProductInfoResponse",
    "SteamClientSession",
    "SteamSession",
]


# -- Events ------------------------------------------------------------------


@dataclass(frozen=True)
class Connected:
    """The CM connection is up."""


@dataclass(frozen=True)
class Disconnected:
    """The CM connection closed.

    Attributes:
        user_initiated: True if we asked for the disconnect (or logoff).
    """

    user_initiated: bool


@dataclass(frozen=True)
class LoggedOn:
    """Answer to a logon attempt."""

    result: EResult
    extended_result: EResult = EResult.OK
    steam_id: int = 0


@dataclass(frozen=True)
class LoggedOff:
    """Steam ended the logged-on session."""

    result: EResult


@dataclass(frozen=True)
class ProductInfoResponse:
    """A PICS product info reply.

    Attributes:
        apps: Parsed appinfo KeyValues per app id.
        unknown_apps: App ids Steam does not know.
        response_pending: True if more parts of the reply will follow.
    """

    apps: dict[int, KeyValueNode] = field(default_factory=dict)
    unknown_apps: frozenset[int] = frozenset()
    response_pending: bool = False


# -- Boundary ----------------------------------------------------------------


class SteamSession(Protocol):
    """Commands the application sends to Steam. Replies arrive as events."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def login(self, credential: AuthCredential) -> None: ...

    def log_off(self) -> None: ...

    def request_product_info(self, app_id: int) -> None: ...

    def begin_qr_auth(self, device_name: str) -> QrAuthSession: ...

    def begin_credentials_auth(
        self,
        username: str,
        password: str,
        *,
        device_name: str,
        guard_data: str | None = None,
        authenticator: Authenticator | None = None,
    ) -> CredentialsAuthSession: ...

    def close(self) -> None: ...


# -- steam.client implementation -----------------------------------------------


class SteamClientSession:
    """SteamSession backed by ``steam.client.SteamClient``."""

    IDLE_INTERVAL = 0.1
    JOIN_TIMEOUT = 10.0
    LOGON_TIMEOUT = 30.0
    PROTOCOL_VERSION = 65580

    def __init__(self, callbacks: CallbackManager) -> None:
        self._callbacks = callbacks
        self._commands: queue.Queue[Callable[[SteamClient], None]] = queue.Queue()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self._disconnect_requested = False

    # -- commands, callable from any thread --

    def connect(self) -> None:
        self._disconnect_requested = False
        self._submit(self._do_connect)

    def disconnect(self) -> None:
        self._disconnect_requested = True
        self._submit(lambda client: client.disconnect())

    def login(self, credential: AuthCredential) -> None:
        self._submit(lambda client: self._do_login(client, credential))

    def log_off(self) -> None:
        self._disconnect_requested = True
        self._submit(lambda client: client.logout())

    def request_product_info(self, app_id: int) -> None:
        self._submit(lambda client: self._do_request_product_info(client, app_id))

    def begin_qr_auth(self, device_name: str) -> QrAuthSession:
        return QrAuthSession.begin(device_name)

    def begin_credentials_auth(
        self,
        username: str,
        password: str,
        *,
        device_name: str,
        guard_data: str | None = None,
        authenticator: Authenticator | None = None,
    ) -> CredentialsAuthSession:
        return CredentialsAuthSession.begin(
            username,
            password,
            device_name=device_name,
            guard_data=guard_data,
            authenticator=authenticator,
        )

    def close(self) -> None:
        """Stops the network thread. Queued commands are dropped."""
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(self.JOIN_TIMEOUT)

    # -- network thread --

    def _submit(self, command: Callable[[SteamClient], None]) -> None:
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name="steam-network", daemon=True)
            self._thread.start()
        self._commands.put(command)

    def _run(self) -> None:
        client = SteamClient()
        client.on(SteamClient.EVENT_CONNECTED, self._on_connected)
        client.on(SteamClient.EVENT_DISCONNECTED, self._on_disconnected)
        client.on(EMsg.ClientLoggedOff, self._on_logged_off)
        client.on(EMsg.ClientPICSProductInfoResponse, self._on_product_info)

        while not self._stopped.is_set():
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                client.sleep(self.IDLE_INTERVAL)
                continue

            try:
                command(client)
            except Exception:
                # Waiters only learn about failures through events
                logger.exception("Steam client command failed")
                self._callbacks.post(Disconnected(user_initiated=False))

        if client.connected:
            self._disconnect_requested = True
            client.disconnect()

    def _do_connect(self, client: SteamClient) -> None:
        if not client.connect(retry=3):
            logger.error("Could not connect to any Steam server")
            self._callbacks.post(Disconnected(user_initiated=False))

    def _do_login(self, client: SteamClient, credential: AuthCredential) -> None:
        # SteamClient.login() only knows password and login_key logons, so the
        # token logon message is built here and sent like any other request
        message = MsgProto(EMsg.ClientLogon)
        message.header.steamid = SteamID(type="Individual", universe="Public")
        message.body.protocol_version = self.PROTOCOL_VERSION
        message.body.client_os_type = EOSType.Windows10
        message.body.client_language = "english"
        message.body.account_name = credential.account_name
        message.body.access_token = credential.refresh_token
        message.body.should_remember_password = False
        message.body.supports_rate_limit_response = True

        client.username = credential.account_name
        client.send(message)
        response = client.wait_msg(EMsg.ClientLogOnResponse, timeout=self.LOGON_TIMEOUT)

        if response is None:
            logger.error("No logon response from Steam within %ss", self.LOGON_TIMEOUT)
            self._callbacks.post(LoggedOn(result=EResult.Timeout))
            return

        steam_id = client.steam_id.as_64 if client.steam_id else 0
        self._callbacks.post(
            LoggedOn(
                result=EResult(response.body.eresult),
                extended_result=EResult(response.body.eresult_extended or EResult.OK),
                steam_id=steam_id,
            )
        )

    def _do_request_product_info(self, client: SteamClient, app_id: int) -> None:
        message = MsgProto(EMsg.ClientPICSProductInfoRequest)
        message.body.apps.add(appid=app_id)
        message.body.meta_data_only = False
        client.send(message)

    # -- client event handlers, run on the network thread --

    def _on_connected(self, *_args: object) -> None:
        self._callbacks.post(Connected())

    def _on_disconnected(self, *_args: object) -> None:
        self._callbacks.post(Disconnected(user_initiated=self._disconnect_requested))

    def _on_logged_off(self, message: MsgProto) -> None:
        self._callbacks.post(LoggedOff(result=EResult(message.body.eresult)))

    def _on_product_info(self, message: MsgProto) -> None:
        apps: dict[int, KeyValueNode] = {}
        for app in message.body.apps:
            # appinfo buffers are NUL-terminated text KeyValues
            text = app.buffer.rstrip(b"\x00").decode("utf-8", errors="replace")
            try:
                apps[app.appid] = keyvalue.loads(text) if text.strip() else KeyValueNode("appinfo")
            except keyvalue.KeyValueParseError as e:
                logger.debug("Unparseable appinfo for AppID %s: %s", app.appid, e)
                apps[app.appid] = KeyValueNode("appinfo")

        self._callbacks.post(
            ProductInfoResponse(
                apps=apps,
                unknown_apps=frozenset(message.body.unknown_appids),
                response_pending=bool(message.body.response_pending),
            )
        )
