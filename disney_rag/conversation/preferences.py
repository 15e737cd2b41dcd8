"""Chat display preferences persisted in session storage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from disney_rag.client.errors import StorageFailure

if TYPE_CHECKING:
    from disney_rag.conversation.storage import SessionStorage

logger = logging.getLogger(__name__)

SETTINGS_KEY = "rag-chat-settings"


class ChatPreferences(BaseModel):
    """Stored as ``{"showCitations": bool}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    show_citations: bool = Field(default=True, alias="showCitations")


def load_preferences(storage: SessionStorage) -> ChatPreferences:
    """Read preferences, falling back to defaults when absent or corrupt."""
    try:
        raw = storage.get_item(SETTINGS_KEY)
    except StorageFailure:
        logger.exception("Failed to load chat settings")
        return ChatPreferences()
    if not raw:
        return ChatPreferences()
    try:
        return ChatPreferences.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Discarding unreadable chat settings: %s", exc)
        return ChatPreferences()


def save_preferences(storage: SessionStorage, prefs: ChatPreferences) -> None:
    """Write preferences. Failures are logged, never raised."""
    try:
        storage.set_item(SETTINGS_KEY, prefs.model_dump_json(by_alias=True))
    except StorageFailure:
        logger.exception("Failed to save chat settings")
