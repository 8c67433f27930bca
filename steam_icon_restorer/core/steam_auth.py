# steam_icon_restorer/core/steam_auth.py

"""
Steam authentication sessions via the IAuthenticationService Web API.

Two kinds of session are supported:
- QR code sessions, approved by scanning the challenge URL with the Steam
  Mobile App. Steam rotates the challenge URL while the session is pending.
- Username/password sessions, which may require Steam Guard (email code,
  mobile authenticator code, or an approval in the mobile app).

Both end with a poll that returns the account name and a refresh token,
which the CM session then uses to log on.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Protocol

import requests
from steam.core.crypto import pkcs1v15_encrypt, rsa_publickey
from steam.enums import EResult

from steam_icon_restorer.core.errors import AuthenticationError

logger = logging.getLogger("steamicons.steam_auth")

__all__ = [
    "AuthPollResult",
    "Authenticator",
    "CredentialsAuthSession",
    "EAuthSessionGuardType",
    "QrAuthSession",
]

API_BASE = "https://api.steampowered.com/IAuthenticationService"
REQUEST_TIMEOUT = 10
PLATFORM_TYPE_WEB_BROWSER = 2
DEFAULT_POLL_INTERVAL = 5.0

_WRONG_CODE_RESULTS = (EResult.InvalidLoginAuthCode, EResult.TwoFactorCodeMismatch)


class EAuthSessionGuardType(IntEnum):
    """Steam Guard confirmation types offered by BeginAuthSessionViaCredentials."""

    Unknown = 0
    NoGuard = 1
    EmailCode = 2
    DeviceCode = 3
    DeviceConfirmation = 4
    EmailConfirmation = 5
    MachineToken = 6


# Preference order when the account allows several confirmation types
_GUARD_PREFERENCE = (
    EAuthSessionGuardType.NoGuard,
    EAuthSessionGuardType.DeviceConfirmation,
    EAuthSessionGuardType.DeviceCode,
    EAuthSessionGuardType.EmailCode,
    EAuthSessionGuardType.EmailConfirmation,
)


class Authenticator(Protocol):
    """Supplies Steam Guard input during a credentials login."""

    def get_device_code(self, previous_code_was_incorrect: bool) -> str:
        """Returns a code from the Steam Mobile App authenticator."""
        ...

    def get_email_code(self, email: str, previous_code_was_incorrect: bool) -> str:
        """Returns the code Steam sent to ``email``."""
        ...

    def accept_device_confirmation(self) -> bool:
        """Asks the user to approve the login in the mobile app."""
        ...


@dataclass(frozen=True)
class AuthPollResult:
    """Tokens returned once an auth session is approved."""

    account_name: str
    refresh_token: str
    access_token: str | None = None
    new_guard_data: str | None = None


def _call_api(method: str, data: dict[str, Any], *, http_method: str = "POST") -> dict[str, Any]:
    """
    Calls an IAuthenticationService method and returns its ``response`` body.

    Args:
        method: The service method name, e.g. "PollAuthSessionStatus".
        data: Request fields.
        http_method: "POST" for session calls, "GET" for the RSA key lookup.

    Returns:
        dict: The ``response`` object of the reply.

    Raises:
        AuthenticationError: On network errors, bad replies, or a non-OK
            ``x-eresult`` header.
    """
    url = f"{API_BASE}/{method}/v1/"
    fields = {key: value for key, value in data.items() if value is not None}

    try:
        if http_method == "GET":
            response = requests.get(url, params=fields, timeout=REQUEST_TIMEOUT)
        else:
            response = requests.post(url, data=fields, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise AuthenticationError(f"{method} request failed: {e}") from e

    raw_result = response.headers.get("x-eresult")
    if raw_result is not None:
        result = int(raw_result)
        if result != EResult.OK:
            raise AuthenticationError(f"{method} failed: {_result_name(result)}", result)

    try:
        return response.json().get("response", {})
    except ValueError as e:
        raise AuthenticationError(f"{method} returned an invalid response") from e


def _result_name(result: int) -> str:
    try:
        return EResult(result).name
    except ValueError:
        return str(result)


class _AuthSession:
    """State shared by QR and credentials sessions: ids and the poll loop."""

    def __init__(
        self,
        client_id: str,
        request_id: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        steam_id: str | None = None,
    ) -> None:
        self.client_id = client_id
        self.request_id = request_id
        self.interval = interval
        self.steam_id = steam_id

    def poll_for_result(self, stop_event: threading.Event | None = None) -> AuthPollResult:
        """
        Polls Steam until the session is approved.

        No local timeout is applied; Steam expires abandoned sessions itself,
        which surfaces here as an AuthenticationError.

        Args:
            stop_event: Optional cancellation token checked between polls.

        Returns:
            AuthPollResult: Account name and tokens.

        Raises:
            AuthenticationError: If Steam rejects or expires the session, or
                if ``stop_event`` is set.
        """
        while True:
            if stop_event is not None and stop_event.is_set():
                raise AuthenticationError("Authentication was cancelled")

            response = _call_api(
                "PollAuthSessionStatus",
                {"client_id": self.client_id, "request_id": self.request_id},
            )

            new_client_id = response.get("new_client_id")
            if new_client_id:
                self.client_id = str(new_client_id)

            new_challenge_url = response.get("new_challenge_url")
            if new_challenge_url:
                self._on_new_challenge_url(new_challenge_url)

            refresh_token = response.get("refresh_token")
            if refresh_token:
                return AuthPollResult(
                    account_name=response.get("account_name", ""),
                    refresh_token=refresh_token,
                    access_token=response.get("access_token") or None,
                    new_guard_data=response.get("new_guard_data") or None,
                )

            if response.get("had_remote_interaction"):
                logger.debug("Remote interaction detected, waiting for approval")

            time.sleep(self.interval)

    def _on_new_challenge_url(self, url: str) -> None:
        pass


class QrAuthSession(_AuthSession):
    """A QR code login that completes when the mobile app approves it.

    Attributes:
        challenge_url: The URL to encode in the QR code.
        challenge_url_changed: Called with the session whenever Steam
            rotates the challenge URL.
    """

    def __init__(self, client_id: str, request_id: str, interval: float, challenge_url: str) -> None:
        super().__init__(client_id, request_id, interval)
        self.challenge_url = challenge_url
        self.challenge_url_changed: Callable[[QrAuthSession], None] | None = None

    @classmethod
    def begin(cls, device_name: str) -> QrAuthSession:
        """
        Starts a QR authentication session.

        Args:
            device_name: Friendly name shown in the Steam Mobile App.

        Returns:
            QrAuthSession: The pending session.
        """
        response = _call_api(
            "BeginAuthSessionViaQR",
            {"device_friendly_name": device_name, "platform_type": PLATFORM_TYPE_WEB_BROWSER},
        )

        challenge_url = response.get("challenge_url")
        if not challenge_url:
            raise AuthenticationError("Steam did not return a QR challenge URL")

        return cls(
            client_id=str(response.get("client_id", "")),
            request_id=str(response.get("request_id", "")),
            interval=float(response.get("interval", DEFAULT_POLL_INTERVAL)),
            challenge_url=challenge_url,
        )

    def _on_new_challenge_url(self, url: str) -> None:
        self.challenge_url = url
        if self.challenge_url_changed is not None:
            self.challenge_url_changed(self)


class CredentialsAuthSession(_AuthSession):
    """A username/password login, possibly guarded by Steam Guard."""

    def __init__(
        self,
        client_id: str,
        request_id: str,
        interval: float,
        steam_id: str,
        allowed_confirmations: list[tuple[EAuthSessionGuardType, str]] | None = None,
        authenticator: Authenticator | None = None,
    ) -> None:
        super().__init__(client_id, request_id, interval, steam_id)
        self.allowed_confirmations = allowed_confirmations or []
        self.authenticator = authenticator

    @classmethod
    def begin(
        cls,
        username: str,
        password: str,
        *,
        device_name: str,
        guard_data: str | None = None,
        authenticator: Authenticator | None = None,
        persistent: bool = False,
    ) -> CredentialsAuthSession:
        """
        Starts a credentials session. The password is RSA-encrypted with the
        account's public key before it is sent.

        Args:
            username: Steam account name.
            password: Steam password.
            device_name: Friendly name shown in Steam's device list.
            guard_data: Guard data from an earlier login on this machine.
            authenticator: Supplies Steam Guard codes and confirmations.
            persistent: Whether Steam should issue a long-lived session.

        Returns:
            CredentialsAuthSession: The pending session.
        """
        key = _call_api("GetPasswordRSAPublicKey", {"account_name": username}, http_method="GET")
        try:
            public_key = rsa_publickey(int(key["publickey_mod"], 16), int(key["publickey_exp"], 16))
        except (KeyError, ValueError) as e:
            raise AuthenticationError("Steam returned an invalid RSA public key") from e

        encrypted_password = base64.b64encode(pkcs1v15_encrypt(public_key, password.encode("utf-8")))

        response = _call_api(
            "BeginAuthSessionViaCredentials",
            {
                "device_friendly_name": device_name,
                "account_name": username,
                "encrypted_password": encrypted_password.decode("ascii"),
                "encryption_timestamp": key.get("timestamp"),
                "remember_login": 1 if persistent else 0,
                "platform_type": PLATFORM_TYPE_WEB_BROWSER,
                "persistence": 1 if persistent else 0,
                "website_id": "Community",
                "guard_data": guard_data,
            },
        )

        confirmations = []
        for item in response.get("allowed_confirmations", []):
            try:
                guard_type = EAuthSessionGuardType(int(item.get("confirmation_type", 0)))
            except ValueError:
                guard_type = EAuthSessionGuardType.Unknown
            confirmations.append((guard_type, item.get("associated_message", "")))

        return cls(
            client_id=str(response.get("client_id", "")),
            request_id=str(response.get("request_id", "")),
            interval=float(response.get("interval", DEFAULT_POLL_INTERVAL)),
            steam_id=str(response.get("steamid", "")),
            allowed_confirmations=confirmations,
            authenticator=authenticator,
        )

    def poll_for_result(self, stop_event: threading.Event | None = None) -> AuthPollResult:
        """Handles Steam Guard, then polls until the login is approved."""
        self._handle_steam_guard()
        return super().poll_for_result(stop_event)

    def send_steam_guard_code(self, code: str, code_type: EAuthSessionGuardType) -> None:
        """Submits an email or device code for this session."""
        _call_api(
            "UpdateAuthSessionWithSteamGuardCode",
            {
                "client_id": self.client_id,
                "steamid": self.steam_id,
                "code": code,
                "code_type": int(code_type),
            },
        )

    def _handle_steam_guard(self) -> None:
        offered = {guard_type: message for guard_type, message in self.allowed_confirmations}

        for guard_type in _GUARD_PREFERENCE:
            if guard_type not in offered:
                continue

            if guard_type == EAuthSessionGuardType.NoGuard:
                return

            if guard_type == EAuthSessionGuardType.EmailConfirmation:
                logger.info("Please confirm this login using the link Steam sent to your email.")
                return

            authenticator = self._require_authenticator()

            if guard_type == EAuthSessionGuardType.DeviceConfirmation:
                if not authenticator.accept_device_confirmation():
                    raise AuthenticationError("Device confirmation was declined")
                return

            self._submit_code_until_accepted(authenticator, guard_type, offered[guard_type])
            return

        if self.allowed_confirmations:
            names = ", ".join(guard_type.name for guard_type, _ in self.allowed_confirmations)
            raise AuthenticationError(f"Unsupported Steam Guard confirmation: {names}")

    def _submit_code_until_accepted(
        self, authenticator: Authenticator, guard_type: EAuthSessionGuardType, message: str
    ) -> None:
        was_incorrect = False
        while True:
            if guard_type == EAuthSessionGuardType.EmailCode:
                code = authenticator.get_email_code(message, was_incorrect)
            else:
                code = authenticator.get_device_code(was_incorrect)

            try:
                self.send_steam_guard_code(code, guard_type)
                return
            except AuthenticationError as e:
                if e.result not in _WRONG_CODE_RESULTS:
                    raise
                was_incorrect = True

    def _require_authenticator(self) -> Authenticator:
        if self.authenticator is None:
            raise AuthenticationError("This account requires Steam Guard, but no authenticator was provided")
        return self.authenticator
