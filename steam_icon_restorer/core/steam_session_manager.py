# steam_icon_restorer/core/steam_session_manager.py

"""
Drives a Steam session from connect to disconnect.

The manager subscribes to the session's events, pumps the CallbackManager on
a dedicated thread, runs the chosen auth flow on a worker thread once the
connection is up, and exposes a single completion signal for the login. The
caller's work (the icon pipeline) runs on the calling thread between login
and logoff.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED -> AUTHENTICATING -> LOGGED_ON
    LOGGED_ON -> LOGGING_OFF -> DISCONNECTED
    any active state -> FAILED (login rejected, auth error, unsolicited disconnect)
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, TypeVar

from steam.enums import EResult

from steam_icon_restorer.config import config
from steam_icon_restorer.core.auth_flows import AuthFlow
from steam_icon_restorer.core.callbacks import CallbackManager, CompletionSignal, Subscription
from steam_icon_restorer.core.errors import LoginFailedError
from steam_icon_restorer.core.steam_session import (
    Connected,
    Disconnected,
    LoggedOff,
    LoggedOn,
    SteamSession,
)

logger = logging.getLogger("steamicons.session")

__all__ = ["SessionState", "SteamSessionManager"]

T = TypeVar("T")


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    LOGGED_ON = "logged_on"
    LOGGING_OFF = "logging_off"
    FAILED = "failed"


# States in which a disconnect we did not ask for ends the run
_ACTIVE_STATES = (
    SessionState.CONNECTING,
    SessionState.CONNECTED,
    SessionState.AUTHENTICATING,
    SessionState.LOGGED_ON,
)


class SteamSessionManager:
    """
    Owns one Steam session for the duration of a run.

    Attributes:
        session: The Steam session being driven.
        callbacks: The dispatcher the session posts its events into.
        stop_event: Set once the run is ending (logoff finished, login
            failed, or the connection dropped). Long waits should check it.
        login_completed: Resolves True once logged on, False on failure.
    """

    def __init__(
        self,
        session: SteamSession,
        callbacks: CallbackManager,
        auth_flow: AuthFlow,
        *,
        callback_wait: float | None = None,
        logoff_grace: float | None = None,
    ) -> None:
        self.session = session
        self.callbacks = callbacks
        self.auth_flow = auth_flow
        self.callback_wait = config.CALLBACK_WAIT if callback_wait is None else callback_wait
        self.logoff_grace = config.LOGOFF_GRACE if logoff_grace is None else logoff_grace

        self.stop_event = threading.Event()
        self.login_completed: CompletionSignal[bool] = CompletionSignal()

        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._disconnected = threading.Event()
        self._logoff_requested = False
        self._subscriptions: list[Subscription] = []
        self._pump_thread: threading.Thread | None = None
        self._auth_thread: threading.Thread | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    def run(self, work: Callable[[SteamSessionManager], T]) -> T:
        """
        Connects, logs on, runs ``work`` and logs off again.

        Args:
            work: Called on this thread once the session is logged on.

        Returns:
            Whatever ``work`` returns.

        Raises:
            LoginFailedError: If the session never reached LOGGED_ON.
        """
        self._subscribe()
        try:
            logger.info("Connecting to Steam...")
            self._set_state(SessionState.CONNECTING)
            self._start_pump()
            self.session.connect()

            if not self.login_completed.wait():
                logger.error("Login failed. Exiting...")
                raise LoginFailedError("Could not log on to Steam")

            result = work(self)

            if self.stop_event.is_set():
                logger.warning("The Steam connection was lost before the run finished.")
            else:
                self._log_off()
            return result
        finally:
            self._shutdown()

    # -- lifecycle --

    def _subscribe(self) -> None:
        self._subscriptions = [
            self.callbacks.subscribe(Connected, self._on_connected),
            self.callbacks.subscribe(Disconnected, self._on_disconnected),
            self.callbacks.subscribe(LoggedOn, self._on_logged_on),
            self.callbacks.subscribe(LoggedOff, self._on_logged_off),
        ]

    def _start_pump(self) -> None:
        self._pump_thread = threading.Thread(target=self._pump, name="steam-callbacks", daemon=True)
        self._pump_thread.start()

    def _pump(self) -> None:
        while not self.stop_event.is_set():
            self.callbacks.run_wait_callbacks(self.callback_wait)

    def _log_off(self) -> None:
        logger.info("Logging off from Steam...")
        with self._state_lock:
            self._logoff_requested = True
            self._state = SessionState.LOGGING_OFF
        self.session.log_off()

        if not self._disconnected.wait(self.logoff_grace):
            logger.debug("No disconnect within %.1fs of logoff", self.logoff_grace)
        logger.info("Done!")

    def _shutdown(self) -> None:
        self.stop_event.set()
        if self._pump_thread is not None and self._pump_thread is not threading.current_thread():
            self._pump_thread.join(self.callback_wait + 1.0)

        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []

        self.session.close()

    def _set_state(self, new_state: SessionState) -> None:
        with self._state_lock:
            logger.debug("Session state %s -> %s", self._state.value, new_state.value)
            self._state = new_state

    def _fail(self) -> None:
        with self._state_lock:
            if self._state != SessionState.FAILED:
                logger.debug("Session state %s -> failed", self._state.value)
            self._state = SessionState.FAILED
        self.stop_event.set()
        self.login_completed.try_set(False)

    # -- event handlers, run on the pump thread --

    def _on_connected(self, _event: Connected) -> None:
        if self.stop_event.is_set():
            return

        logger.info("Connected to Steam!")
        self._set_state(SessionState.CONNECTED)
        self._set_state(SessionState.AUTHENTICATING)

        # Auth may wait on the user for minutes; keep it off the pump thread
        self._auth_thread = threading.Thread(target=self._authenticate, name="steam-auth", daemon=True)
        self._auth_thread.start()

    def _authenticate(self) -> None:
        try:
            credential = self.auth_flow.produce_credential(self.session, self.stop_event)
            if self.stop_event.is_set():
                return
            self.session.login(credential)
        except Exception as e:
            logger.error("Authentication error: %s", e)
            logger.debug("Authentication failure details", exc_info=True)
            self._fail()

    def _on_logged_on(self, event: LoggedOn) -> None:
        if event.result != EResult.OK:
            logger.error("Failed to log on to Steam: %s", event.result.name)
            if event.extended_result != EResult.OK:
                logger.error("Extended result: %s", event.extended_result.name)
            self._fail()
            return

        with self._state_lock:
            if self._state != SessionState.AUTHENTICATING:
                logger.debug("Ignoring logon response in state %s", self._state.value)
                return
            self._state = SessionState.LOGGED_ON

        logger.info("Successfully logged on to Steam!")
        logger.info("SteamID: %s", event.steam_id)
        self.login_completed.try_set(True)

    def _on_logged_off(self, event: LoggedOff) -> None:
        logger.info("Logged off from Steam: %s", event.result.name)

    def _on_disconnected(self, event: Disconnected) -> None:
        logger.info("Disconnected from Steam. User initiated: %s", event.user_initiated)

        with self._state_lock:
            expected = self._logoff_requested
            if expected:
                self._state = SessionState.DISCONNECTED
            elif self._state in _ACTIVE_STATES:
                logger.warning("Unexpected disconnection occurred.")
                self._state = SessionState.FAILED

        self.stop_event.set()
        self.login_completed.try_set(False)
        self._disconnected.set()
