# kliv/errors.py
from __future__ import annotations

from typing import Any, List, Optional


class KlivError(Exception):
    """Base class for every error raised by the resource clients."""

    def __init__(
        self, message: str, status: Optional[int] = None, details: Any = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def __str__(self) -> str:
        return self.message


class ArgumentError(KlivError, ValueError):
    """Local precondition failed; no request was sent."""


class RequestError(KlivError):
    """Non-2xx or transport failure from the database/content endpoints."""


class AuthError(RequestError):
    """Non-2xx or transport failure from the auth endpoints."""


class UploadError(KlivError):
    """
    Upload failed: network error, cancellation, non-200 status or a body
    that is not JSON. `results` holds uploads that completed before the
    failure when raised from a batch.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Any = None,
        results: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message, status=status, details=details)
        self.results = list(results or [])


class FunctionError(KlivError):
    """Remote function returned non-2xx; `details` is the decoded error body."""


def error_message(
    payload: Any, fallback: str, keys: tuple[str, ...] = ("message", "error")
) -> str:
    """
    Pick the first non-empty string among `keys` in a decoded error body,
    falling back to `fallback` when the body is not a mapping or has none.
    """
    if isinstance(payload, dict):
        for key in keys:
            val = payload.get(key)
            if isinstance(val, str) and val:
                return val
    return fallback
