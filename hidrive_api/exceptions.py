"""Exception classes for the hidrive_api package.

This module defines the error taxonomy raised by the request pipeline. Every
exception carries an optional ``context`` naming the endpoint that failed, so a
caller can render a diagnostic without re-parsing raw HTTP details.
"""
from typing import Optional


class HiDriveApiException(Exception):
    """Base exception for all HiDrive API errors.

    Catching this exception will catch all hidrive_api-specific errors.
    """

    def __init__(self, message: str = "", context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


class AuthError(HiDriveApiException):
    """Raised when no valid access token can be obtained.

    This can occur due to:
    - Invalid or revoked refresh token
    - Token endpoint unreachable during refresh
    - The server rejecting a request again after a token refresh

    Not retried further by the library.
    """


class TransportError(HiDriveApiException):
    """Raised on connection failures, timeouts and interrupted streams.

    Retry policy is left to the caller.
    """


class HttpError(HiDriveApiException):
    """Raised for a non-2xx response without a recognizable error envelope."""

    def __init__(self, status: int, body: str = "", context: Optional[str] = None):
        super().__init__(f"HTTP {status}: {body[:200]}" if body else f"HTTP {status}", context)
        self.status = status
        self.body = body


class ApiError(HttpError):
    """Raised for a non-2xx response carrying the service's error envelope.

    Attributes:
        message: Human readable message (``msg`` in the envelope)
        code: Error code as sent by the server
        auth: Re-authorization hint, e.g. when the token has expired
    """

    def __init__(self, status: int, message: str, code: str = "",
                 auth: Optional[str] = None, body: str = "", context: Optional[str] = None):
        super().__init__(status, body, context)
        self.message = message
        self.code = code
        self.auth = auth

    def __str__(self) -> str:
        text = f"{self.message} (code {self.code}, HTTP {self.status})"
        if self.auth:
            text += f" [auth: {self.auth}]"
        if self.context:
            return f"{self.context}: {text}"
        return text


class DecodeError(HiDriveApiException):
    """Raised when a 2xx response body does not match the expected shape.

    This usually points to an API version mismatch.
    """
