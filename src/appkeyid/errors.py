"""Typed errors raised by the SDK and the backend response classifier.

Every error carries a human-readable ``message`` suitable for direct display.
Nothing in the SDK retries; errors surface to the immediate caller.
"""

from __future__ import annotations

from typing import Any

GENERIC_SERVER_MESSAGE = "Whoops! Something went wrong on the server"


class AppKeyIDError(Exception):
    """Base exception for all SDK errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(AppKeyIDError):
    """Raised when no backend address is configured."""

    def __init__(self, message: str = "AppKey backend address is not configured") -> None:
        super().__init__(message)


class ServerError(AppKeyIDError):
    """Raised when the backend rejects a request at the application level."""

    def __init__(self, code: int | str, message: str) -> None:
        self.code = code
        super().__init__(message)


class DecodeError(AppKeyIDError):
    """Raised when a response does not match the expected shape."""

    pass


class Unauthenticated(AppKeyIDError):
    """Raised when a protected call is made without an access token."""

    def __init__(self, message: str = "Please sign in again to continue") -> None:
        super().__init__(message)


class TransportError(AppKeyIDError):
    """Raised when the request never produced a response (network, timeout)."""

    pass


class InvalidRequest(AppKeyIDError):
    """Raised when caller-supplied arguments fail client-side validation."""

    pass


class InvalidAsset(AppKeyIDError):
    """Raised when an upload asset has no payload or no resolvable file name."""

    def __init__(self, message: str = "Your image is invalid") -> None:
        super().__init__(message)


class UploadFailed(AppKeyIDError):
    """Raised when an upload fails before any byte was sent."""

    def __init__(
        self, message: str = "Whoops! Something went wrong while uploading to server"
    ) -> None:
        super().__init__(message)


def check_response(payload: Any, status_code: int) -> None:
    """Classify a decoded backend response.

    Must run after every transport call and before any typed decode, since a
    failure payload does not share the success payload's shape.

    Args:
        payload: Decoded JSON body, or None when the body was not JSON.
        status_code: HTTP status of the response.

    Raises:
        ServerError: If the payload's ``status`` field is false, or the HTTP
            status is outside the 2xx range.
    """
    body = payload if isinstance(payload, dict) else {}

    message = body.get("message")
    if not isinstance(message, str) or not message:
        message = GENERIC_SERVER_MESSAGE

    # Some endpoints send a boolean ``code``; only numeric/string codes are meaningful.
    code = body.get("code")
    if isinstance(code, bool) or not isinstance(code, int | str):
        code = status_code

    if body.get("status") is False:
        raise ServerError(code=code, message=message)

    if not 200 <= status_code < 300:
        raise ServerError(code=code, message=message)
