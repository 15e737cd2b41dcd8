"""Closed error taxonomy for the RAG client and its fixed user-facing messages."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Every failure the client can surface to a user."""

    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_INPUT = "invalid_input"
    REQUEST_FAILED = "request_failed"
    INVALID_CODE = "invalid_code"
    STORAGE_FAILURE = "storage_failure"
    UNKNOWN = "unknown"


_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK_ERROR: "Network error. Please check your connection and try again.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.SERVICE_UNAVAILABLE: "AI service is temporarily unavailable. Please try again later.",
    ErrorKind.INVALID_INPUT: "Invalid query. Please check your input and try again.",
    ErrorKind.REQUEST_FAILED: "An error occurred while processing your request.",
    ErrorKind.INVALID_CODE: "Invalid access code. Please check the code and try again.",
    ErrorKind.STORAGE_FAILURE: "Conversation history could not be saved.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}

_RATE_LIMITED_WITH_LIMIT = (
    "Rate limit reached: you have used all {limit} queries for this hour. "
    "Unlock premium for more."
)


def message_for(kind: ErrorKind, *, limit: int | None = None) -> str:
    """Return the stable user-facing message for *kind*."""
    if kind is ErrorKind.RATE_LIMITED and limit is not None:
        return _RATE_LIMITED_WITH_LIMIT.format(limit=limit)
    return _MESSAGES[kind]


class RagError(Exception):
    """A typed failure from the RAG backend.

    Attributes:
        kind: The taxonomy entry.
        status: HTTP status code, when a response was received.
        limit: Server-declared hourly limit (``RATE_LIMITED`` only).
    """

    def __init__(
        self,
        kind: ErrorKind,
        *,
        status: int | None = None,
        limit: int | None = None,
    ) -> None:
        self.kind = kind
        self.status = status
        self.limit = limit
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return message_for(self.kind, limit=self.limit)

    def __repr__(self) -> str:
        return f"RagError(kind={self.kind.value!r}, status={self.status!r}, limit={self.limit!r})"


class StorageFailure(Exception):
    """Session storage could not be read or written (quota, I/O, encoding)."""

    kind = ErrorKind.STORAGE_FAILURE
