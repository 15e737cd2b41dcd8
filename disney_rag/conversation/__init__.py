"""Conversation history — message model, session storage, and the store."""

from disney_rag.conversation.models import Message, make_request_id
from disney_rag.conversation.preferences import ChatPreferences, load_preferences, save_preferences
from disney_rag.conversation.storage import SessionStorage
from disney_rag.conversation.store import ConversationStore

__all__ = [
    "ChatPreferences",
    "ConversationStore",
    "Message",
    "SessionStorage",
    "load_preferences",
    "make_request_id",
    "save_preferences",
]
