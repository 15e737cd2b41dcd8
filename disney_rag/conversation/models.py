"""Conversation message model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from disney_rag.client.errors import ErrorKind, message_for
from disney_rag.client.models import Citation

if TYPE_CHECKING:
    from disney_rag.client.models import QueryResult

Role = Literal["user", "assistant"]


def _now() -> datetime:
    return datetime.now(UTC)


def make_request_id() -> str:
    """Generate a new request ID."""
    return uuid.uuid4().hex


class Message(BaseModel):
    """A single conversation turn.

    Attributes:
        id: Unique within the conversation. An assistant placeholder and the
            message that finalizes it share the same id.
        role: ``"user"`` or ``"assistant"``.
        text: The question, the answer, or the error message.
        citations: Sources backing an answer (empty for everything else).
        error_kind: Set only on failed assistant messages.
        cached: Whether the backend served the answer from its cache.
        created_at: Timezone-aware UTC timestamp.
        pending: True for an assistant placeholder awaiting its result.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    text: str = ""
    citations: list[Citation] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    cached: bool = False
    created_at: datetime = Field(default_factory=_now)
    pending: bool = False

    @property
    def failed(self) -> bool:
        return self.error_kind is not None

    # -- Constructors ----------------------------------------------------------

    @classmethod
    def user(cls, text: str, request_id: str) -> Message:
        return cls(id=f"user-{request_id}", role="user", text=text)

    @classmethod
    def placeholder(cls, request_id: str) -> Message:
        return cls(id=f"assistant-{request_id}", role="assistant", pending=True)

    @classmethod
    def answer(cls, message_id: str, result: QueryResult) -> Message:
        return cls(
            id=message_id,
            role="assistant",
            text=result.answer,
            citations=list(result.sources),
            cached=result.cached,
        )

    @classmethod
    def failure(cls, message_id: str, kind: ErrorKind, *, limit: int | None = None) -> Message:
        return cls(
            id=message_id,
            role="assistant",
            text=message_for(kind, limit=limit),
            error_kind=kind,
        )


MessageList = TypeAdapter(list[Message])
