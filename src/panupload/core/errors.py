"""Exception hierarchy for panupload.

This module provides:
- PanError: Base exception for every failure surfaced by an upload
- TransportError, RateLimitedError: Transient failures retried by the pacer
- RemoteError: Application-level rejection carried in a JSON error envelope
- UploadError and subclasses: Failures of the upload pipeline itself
- remote_error_from_payload: Normalizes both remote error envelope shapes
"""

from __future__ import annotations

from typing import Any

# errno values the remote uses for "hit frequency control"
RATE_LIMIT_CODES = frozenset({31034})


class PanError(Exception):
    """Base exception for panupload errors."""


class TransportError(PanError):
    """Request did not produce a usable response (connection, timeout, 5xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TransportError):
    """Remote answered HTTP 429."""


class AuthenticationError(PanError):
    """No usable access token."""


class ProtocolError(PanError):
    """Remote response did not match the expected shape."""


class RemoteError(PanError):
    """Structured error returned by the remote.

    Attributes:
        code: Application error code (errno / error_code).
        message: Error message reported by the remote, possibly empty.
        request_id: Remote request identifier, if reported.
    """

    def __init__(
        self,
        code: int,
        message: str = "",
        request_id: Any = None,
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(
            f"remote error {code}: {message or 'no message'} (request_id: {request_id})"
        )

    @property
    def is_rate_limited(self) -> bool:
        """Check if the code signals rate limiting."""
        return self.code in RATE_LIMIT_CODES


class UploadError(PanError):
    """Failed to upload a file."""


class SizeError(UploadError):
    """Declared size is invalid or does not match the content."""


class BlockUploadError(UploadError):
    """A block could not be uploaded.

    Attributes:
        index: Zero-based index of the failed block.
    """

    def __init__(self, index: int, cause: Exception) -> None:
        self.index = index
        self.cause = cause
        super().__init__(f"Failed to upload block {index}: {cause}")


class UploadCancelledError(UploadError):
    """Raised when an upload is cancelled."""


def remote_error_from_payload(payload: Any) -> RemoteError | None:
    """Build a RemoteError from a response body, if it carries one.

    The remote uses two envelopes: ``{errno, errmsg, request_id}`` on the
    xpan endpoints and ``{error_code, error_msg}`` on the pcs/openapi ones.
    ``errno`` wins when both are present and non-zero.

    Args:
        payload: Decoded JSON body.

    Returns:
        RemoteError for a non-zero code, None otherwise.
    """
    if not isinstance(payload, dict):
        return None

    code = _as_int(payload.get("errno"))
    message = payload.get("errmsg") or ""
    if code == 0:
        code = _as_int(payload.get("error_code"))
        message = payload.get("error_msg") or ""
    if code == 0:
        return None

    request_id = payload.get("request_id", payload.get("requestid"))
    return RemoteError(code, str(message), request_id)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
