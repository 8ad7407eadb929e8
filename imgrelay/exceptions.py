"""
Custom exceptions for the relay service.
"""

from typing import Any


class RelayError(Exception):
    """Base exception for the relay service."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# === Outbound HTTP ===

class HttpError(RelayError):
    """Raised when a call to Telegram or the image host fails."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status: int | None = None,
        body: str | None = None,
    ):
        super().__init__(
            message=message,
            details={"retryable": retryable, "status": status, "body": body},
        )
        self.retryable = retryable
        self.status = status
        self.body = body


def is_retryable_error(error: BaseException) -> bool:
    """Only errors explicitly marked retryable are worth another attempt."""
    return isinstance(error, HttpError) and error.retryable


# === Dedup storage ===

class DedupBackendNotImplementedError(RelayError):
    """Raised when a dedup backend is selected that has no implementation yet."""

    def __init__(self, backend: str):
        super().__init__(
            message=f"DEDUP_STORE_TYPE={backend} is not implemented yet, use memory",
            details={"backend": backend},
        )
