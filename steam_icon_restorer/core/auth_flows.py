# steam_icon_restorer/core/auth_flows.py

"""
The two ways of obtaining a Steam refresh token.

Both flows implement produce_credential(), so the session manager does not
care which one the user picked:
- QrAuthFlow shows a QR code for the Steam Mobile App (recommended).
- CredentialsAuthFlow logs in with username and password, asking for
  Steam Guard codes on the terminal when needed.
"""

from __future__ import annotations

import io
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

import qrcode
from qrcode.exceptions import DataOverflowError

from steam_icon_restorer.config import config
from steam_icon_restorer.core.console_authenticator import ConsoleAuthenticator
from steam_icon_restorer.core.errors import ConfigurationError
from steam_icon_restorer.core.steam_auth import Authenticator, QrAuthSession

if TYPE_CHECKING:
    from steam_icon_restorer.core.steam_session import SteamSession

logger = logging.getLogger("steamicons.auth")

__all__ = [
    "AuthCredential",
    "AuthFlow",
    "AuthMethod",
    "CredentialsAuthFlow",
    "QrAuthFlow",
    "render_challenge_url",
]


class AuthMethod(str, Enum):
    QR = "qr"
    CREDENTIALS = "credentials"


@dataclass(frozen=True)
class AuthCredential:
    """What a successful auth flow hands to the CM logon.

    Kept in memory for the current run only.

    Attributes:
        method: The flow that produced the credential.
        account_name: Steam account name to log on as.
        refresh_token: Token used as the logon access token.
        access_token: Short-lived web access token, if Steam returned one.
        new_guard_data: Steam Guard data issued for this machine, if any.
    """

    method: AuthMethod
    account_name: str
    refresh_token: str
    access_token: str | None = None
    new_guard_data: str | None = None

    def __repr__(self) -> str:
        return f"AuthCredential(method={self.method.value!r}, account_name={self.account_name!r})"


class AuthFlow(ABC):
    """Produces an AuthCredential using an already connected session."""

    method: AuthMethod

    @abstractmethod
    def produce_credential(
        self, session: SteamSession, stop_event: threading.Event | None = None
    ) -> AuthCredential:
        """
        Runs the flow to completion.

        Args:
            session: The Steam session to start the auth session on.
            stop_event: Cancellation token; set when the session fails.

        Returns:
            AuthCredential: The account name and tokens.

        Raises:
            AuthenticationError: If Steam rejects or expires the attempt.
        """


def render_challenge_url(challenge_url: str) -> None:
    """Logs the challenge URL and an ASCII QR code of it."""
    logger.info("Challenge URL: %s", challenge_url)

    try:
        qr = qrcode.QRCode(border=1, error_correction=qrcode.constants.ERROR_CORRECT_L)
        qr.add_data(challenge_url)
        qr.make(fit=True)

        buffer = io.StringIO()
        qr.print_ascii(out=buffer, invert=True)
    except (DataOverflowError, ValueError) as e:
        logger.error("Failed to generate QR code: %s", e)
        logger.info("Please visit: %s", challenge_url)
        return

    logger.info("Use the Steam Mobile App to sign in via QR code:\n%s", buffer.getvalue())


class QrAuthFlow(AuthFlow):
    """Login by scanning a QR code with the Steam Mobile App."""

    method = AuthMethod.QR

    def __init__(
        self,
        device_name: str | None = None,
        render: Callable[[str], None] = render_challenge_url,
    ) -> None:
        self.device_name = device_name or config.DEVICE_NAME
        self._render = render

    def produce_credential(
        self, session: SteamSession, stop_event: threading.Event | None = None
    ) -> AuthCredential:
        logger.info("Starting QR Code authentication...")

        auth_session = session.begin_qr_auth(self.device_name)
        auth_session.challenge_url_changed = self._on_challenge_url_changed
        self._render(auth_session.challenge_url)

        result = auth_session.poll_for_result(stop_event)
        logger.info("Authenticated as '%s'", result.account_name)

        return AuthCredential(
            method=self.method,
            account_name=result.account_name,
            refresh_token=result.refresh_token,
            access_token=result.access_token,
        )

    def _on_challenge_url_changed(self, auth_session: QrAuthSession) -> None:
        logger.info("")
        logger.info("Steam has refreshed the challenge URL")
        self._render(auth_session.challenge_url)


class CredentialsAuthFlow(AuthFlow):
    """Login with username and password plus Steam Guard.

    Attributes:
        guard_data: Steam Guard data from the last successful login. Only
            held for the lifetime of this object.
    """

    method = AuthMethod.CREDENTIALS

    def __init__(
        self,
        username: str | None,
        password: str | None,
        authenticator: Authenticator | None = None,
        device_name: str | None = None,
    ) -> None:
        if not username or not password:
            raise ConfigurationError("Username and password are required for credentials authentication")

        self.username = username
        self._password = password
        self.authenticator = authenticator if authenticator is not None else ConsoleAuthenticator()
        self.device_name = device_name or config.DEVICE_NAME
        self.guard_data: str | None = None

    def produce_credential(
        self, session: SteamSession, stop_event: threading.Event | None = None
    ) -> AuthCredential:
        logger.info("Logging in as '%s'...", self.username)

        auth_session = session.begin_credentials_auth(
            self.username,
            self._password,
            device_name=self.device_name,
            guard_data=self.guard_data,
            authenticator=self.authenticator,
        )
        result = auth_session.poll_for_result(stop_event)

        if result.new_guard_data:
            self.guard_data = result.new_guard_data

        return AuthCredential(
            method=self.method,
            account_name=result.account_name or self.username,
            refresh_token=result.refresh_token,
            access_token=result.access_token,
            new_guard_data=result.new_guard_data,
        )
