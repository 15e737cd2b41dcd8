"""Wire models for the backend RAG API (snake_case JSON)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ContentType = Literal["character", "movie", "park", "other"]
Tier = Literal["free", "premium", "admin"]

_KNOWN_CONTENT_TYPES = {"character", "movie", "park"}


class Citation(BaseModel):
    """A retrieved source excerpt supporting an assistant answer."""

    model_config = ConfigDict(frozen=True)

    content_type: ContentType = "other"
    content_id: int
    content_name: str
    similarity_score: float = Field(ge=0.0, le=1.0)
    excerpt: str = ""

    @field_validator("content_type", mode="before")
    @classmethod
    def _coerce_content_type(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text if text in _KNOWN_CONTENT_TYPES else "other"

    @property
    def link(self) -> str:
        """In-app detail path for the cited item, e.g. ``/character/1``."""
        return f"/{self.content_type}/{self.content_id}"


class QueryResult(BaseModel):
    """Successful response from ``POST /api/rag/query``."""

    model_config = ConfigDict(frozen=True)

    answer: str
    sources: list[Citation] = Field(default_factory=list)
    query: str = ""
    cached: bool = False


class TierState(BaseModel):
    """Rate-limit tier and usage for the current session.

    ``remaining`` is always derived as ``max(limit - used, 0)``; the server's
    own figure is not trusted.
    """

    model_config = ConfigDict(frozen=True)

    tier: Tier = "free"
    limit: int = Field(ge=0)
    used: int = Field(ge=0)
    remaining: int = 0
    message: str = ""

    @model_validator(mode="before")
    @classmethod
    def _derive_remaining(cls, data: Any) -> Any:
        if isinstance(data, dict) and "limit" in data and "used" in data:
            data = dict(data)
            try:
                data["remaining"] = max(int(data["limit"]) - int(data["used"]), 0)
            except (TypeError, ValueError):
                # Leave it to field validation to report the bad limit/used
                pass
        return data

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0


class ServiceAvailability(BaseModel):
    """Kill-switch state from ``GET /api/rag/status``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = Field(alias="rag_enabled")
    message: str = ""
