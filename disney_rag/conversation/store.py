"""ConversationStore — ordered message log with session-scoped persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from disney_rag.client.errors import ErrorKind, StorageFailure
from disney_rag.conversation.models import Message, MessageList

if TYPE_CHECKING:
    from collections.abc import Sequence

    from disney_rag.conversation.storage import SessionStorage

logger = logging.getLogger(__name__)

HISTORY_KEY = "rag-chat-history"


class ConversationStore:
    """Append-only conversation with best-effort persistence.

    The in-memory list is authoritative for the running session. Every
    mutation re-writes the whole snapshot to *storage*; a failed write is
    logged and swallowed. Reading the snapshot back never raises.
    """

    def __init__(self, storage: SessionStorage, key: str = HISTORY_KEY) -> None:
        self._storage = storage
        self._key = key
        self._messages: list[Message] = []

    # -- Reads -----------------------------------------------------------------

    def all(self) -> list[Message]:
        """Return a copy of the conversation in insertion order."""
        return list(self._messages)

    def get(self, message_id: str) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    def __len__(self) -> int:
        return len(self._messages)

    # -- Mutations -------------------------------------------------------------

    def append(self, message: Message) -> None:
        """Add *message* to the end of the conversation and persist."""
        if self.get(message.id) is not None:
            msg = f"Duplicate message id: {message.id}"
            raise ValueError(msg)
        self._messages.append(message)
        self.persist(self._messages)

    def replace_pending(self, message_id: str, final: Message) -> None:
        """Finalize the pending placeholder *message_id* in place.

        Raises ``KeyError`` if no message has that id and ``ValueError`` if it
        was already finalized or *final* is itself pending.
        """
        for index, current in enumerate(self._messages):
            if current.id != message_id:
                continue
            if not current.pending:
                msg = f"Message {message_id} is already finalized"
                raise ValueError(msg)
            if final.pending or final.id != message_id:
                msg = f"Replacement for {message_id} must be a finalized message with the same id"
                raise ValueError(msg)
            self._messages[index] = final
            self.persist(self._messages)
            return
        raise KeyError(message_id)

    def clear(self) -> int:
        """Drop the whole history. Returns the number of messages removed."""
        count = len(self._messages)
        self._messages.clear()
        try:
            self._storage.remove_item(self._key)
        except StorageFailure:
            logger.exception("Failed to remove saved chat history")
        logger.info("Cleared conversation history (%d message(s))", count)
        return count

    # -- Persistence -----------------------------------------------------------

    def persist(self, messages: Sequence[Message]) -> None:
        """Write *messages* to session storage. Never raises."""
        try:
            payload = MessageList.dump_json(list(messages)).decode("utf-8")
            self._storage.set_item(self._key, payload)
        except (StorageFailure, PydanticSerializationError, ValueError):
            logger.exception("Failed to save chat history (%d message(s))", len(messages))

    def hydrate(self) -> list[Message]:
        """Read the persisted conversation. Any failure yields ``[]``."""
        try:
            raw = self._storage.get_item(self._key)
        except StorageFailure:
            logger.exception("Failed to load chat history")
            return []
        if not raw:
            return []
        try:
            return MessageList.validate_json(raw)
        except (ValidationError, ValueError) as exc:
            logger.warning("Discarding unreadable chat history: %s", exc)
            return []

    def load(self) -> list[Message]:
        """Hydrate into memory at session start.

        A placeholder left pending by an interrupted session is finalized as
        a network error so it doesn't wait forever.
        """
        messages = self.hydrate()
        dangling = 0
        for index, message in enumerate(messages):
            if message.pending:
                messages[index] = Message.failure(message.id, ErrorKind.NETWORK_ERROR).model_copy(
                    update={"created_at": message.created_at}
                )
                dangling += 1
        self._messages = messages
        if dangling:
            logger.info("Finalized %d interrupted placeholder(s) from the last session", dangling)
            self.persist(self._messages)
        logger.debug("Loaded %d message(s) from session storage", len(messages))
        return self.all()
