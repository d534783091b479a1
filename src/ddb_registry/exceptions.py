"""Registry client exceptions.

This module provides the exception classes raised by the registry client.
Every failure surfaces to the immediate caller; the only place an error is
logged instead of raised is the background token refresh loop.
"""

from typing import Any

LOGGED_OUT = "logged out"
NOT_LOGGED_IN = "not logged in"


class RegistryError(Exception):
    """Base exception for all registry client errors."""

    pass


class RequestError(RegistryError):
    """A request completed but the registry answered with a failure.

    Attributes:
        message: Failure message (also the string form of the exception)
        status_code: HTTP status code of the response (if available)
        extra: Extra fields from a JSON error body
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.extra = dict(extra or {})
        super().__init__(message)


class UnauthorizedError(RequestError):
    """Authentication failed (401).

    A JSON error body's fields are kept in ``extra``.
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code=401, extra=extra)


class NotFoundError(RequestError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ServerError(RequestError):
    """Any other non-successful response."""

    pass


class TransportError(RegistryError):
    """The request could not be completed or its body could not be parsed."""

    pass


class LoginError(TransportError):
    """Login failed before a usable answer was received."""

    def __init__(self, cause: str):
        super().__init__(f"Cannot login: {cause}")


class PreconditionError(RegistryError):
    """An operation was called in a state or with arguments it cannot accept.

    Raised before any network call is made.
    """

    pass


class NotLoggedInError(PreconditionError):
    def __init__(self):
        super().__init__(NOT_LOGGED_IN)


class LoggedOutError(PreconditionError):
    """Token refresh was attempted without a valid session.

    The message is exactly ``"logged out"``; the refresh scheduler uses it to
    stop rearming.
    """

    def __init__(self):
        super().__init__(LOGGED_OUT)


class InvalidArgumentError(PreconditionError):
    pass


class NativeError(RegistryError):
    """The native core reported an error through its callback."""

    pass
