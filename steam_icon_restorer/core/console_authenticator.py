# steam_icon_restorer/core/console_authenticator.py

"""Steam Guard prompts on the terminal for username/password logins."""

from __future__ import annotations

import logging

logger = logging.getLogger("steamicons.console_auth")

__all__ = ["ConsoleAuthenticator"]


class ConsoleAuthenticator:
    """Reads Steam Guard codes from stdin."""

    def get_device_code(self, previous_code_was_incorrect: bool) -> str:
        if previous_code_was_incorrect:
            logger.warning("The previous code was incorrect.")
        return input("Enter 2FA code from your authenticator app: ").strip()

    def get_email_code(self, email: str, previous_code_was_incorrect: bool) -> str:
        if previous_code_was_incorrect:
            logger.warning("The previous code was incorrect.")
        return input(f"Enter the code sent to {email}: ").strip()

    def accept_device_confirmation(self) -> bool:
        logger.info("Please confirm this login in your Steam Mobile App...")
        return True
