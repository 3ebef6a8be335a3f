"""Exception types raised by relay clients and the relay service."""
from __future__ import annotations


class RelayError(Exception):
    """Base exception type for all relay errors."""

    pass


class RelayServiceError(RelayError):
    """Base exception type for exceptions raised by the relay service."""

    pass


class BadRequestError(RelayServiceError):
    """The request does not match the declared schema."""

    pass


class RelayClientError(RelayError):
    """Base exception type for exceptions raised by relay clients."""

    pass


class RelayRequestError(RelayClientError):
    """A request to the relay failed or returned an error response.

    Args:
        message: Error message.
        status_code: HTTP status code of the response, if one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
