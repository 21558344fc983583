"""Error taxonomy shared by the transport, the handles and the poll loop.

Every failure that crosses the public surface is a :class:`RecordStoreError`
carrying a slash-separated ``reason`` code:

- ``record/*`` and ``collection/*`` come from the server or the write path
- ``request/invalid-descriptor`` is raised synchronously by query builders
- ``transport/*`` covers network, HTTP status and decoding failures
- ``unknown/error`` wraps anything else
"""
from __future__ import annotations

from typing import Any

_REASON_MESSAGES: dict[str, str] = {
    "record/not-found": "record not found",
    "collection/not-found": "collection not found",
    "collection/invalid-call": "invalid call to collection method",
    "record/invalid": "record data does not match the collection schema",
    "request/invalid-descriptor": "invalid request description",
    "auth/missing-signer": "request requires authentication but no signer is configured",
    "transport/network-error": "network request failed",
    "transport/http-error": "server returned an error response",
    "transport/decode-error": "response could not be decoded",
    "unknown/error": "unknown error",
}


class RecordStoreError(Exception):
    """Raised for any failure talking to, or validating against, the record store."""

    def __init__(
        self,
        reason: str,
        message: str | None = None,
        *,
        status_code: int | None = None,
        data: Any = None,
        original_error: BaseException | None = None,
    ) -> None:
        self.reason = reason
        self.message = message or _REASON_MESSAGES.get(reason, reason)
        self.status_code = status_code
        self.data = data
        self.original_error = original_error
        super().__init__(f"{reason}: {self.message}")

    def __repr__(self) -> str:
        return f"RecordStoreError(reason={self.reason!r}, message={self.message!r})"


def create_error(reason: str, message: str | None = None, **kwargs: Any) -> RecordStoreError:
    if reason not in _REASON_MESSAGES:
        raise ValueError(f"Unknown error reason '{reason}'")
    return RecordStoreError(reason, message, **kwargs)


def wrap_error(error: BaseException) -> RecordStoreError:
    """Pass record store errors through, wrap everything else as ``unknown/error``."""
    if isinstance(error, RecordStoreError):
        return error
    return RecordStoreError("unknown/error", str(error) or None, original_error=error)


def error_from_body(status_code: int, body: Any) -> RecordStoreError:
    """Map a non-2xx response body of shape ``{"error": {"reason", "message"}}``."""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("reason"):
        return RecordStoreError(
            str(error["reason"]),
            error.get("message"),
            status_code=status_code,
            data=body,
        )
    return create_error(
        "transport/http-error",
        f"server returned status {status_code}",
        status_code=status_code,
        data=body,
    )
