"""Exception hierarchy for Steam Icon Restorer.

Fatal errors (configuration, library discovery, login) derive from
IconRestorerError and propagate to the CLI, which maps them to exit code 1.
Per-game failures never raise past the icon pipeline.
"""

from __future__ import annotations

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "IconRestorerError",
    "LibraryFoldersError",
    "LoginFailedError",
]


class IconRestorerError(Exception):
    """Base class for all fatal errors raised by the application."""


class ConfigurationError(IconRestorerError):
    """Invalid install path or missing credentials for the chosen auth method."""


class LibraryFoldersError(IconRestorerError):
    """libraryfolders.vdf could not be read or has an unexpected layout."""


class AuthenticationError(IconRestorerError):
    """An IAuthenticationService session was rejected or could not be completed.

    Attributes:
        result: The EResult code reported by Steam, if any.
    """

    def __init__(self, message: str, result: int | None = None) -> None:
        super().__init__(message)
        self.result = result


class LoginFailedError(IconRestorerError):
    """The CM session never reached the logged-on state."""
