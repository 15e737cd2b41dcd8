"""Shared test fixtures."""

from unittest.mock import AsyncMock

import pytest

from disney_rag.client.models import ServiceAvailability, TierState
from disney_rag.conversation.storage import SessionStorage
from disney_rag.conversation.store import ConversationStore
from disney_rag.status.poller import StatusPoller


@pytest.fixture
def storage(tmp_path) -> SessionStorage:
    """Session storage rooted in a temporary directory."""
    return SessionStorage(root=tmp_path / "session", session_id="test-session")


@pytest.fixture
def store(storage: SessionStorage) -> ConversationStore:
    return ConversationStore(storage)


@pytest.fixture
def rag_client() -> AsyncMock:
    """A RagClient stand-in reporting a fresh free tier and the service enabled."""
    client = AsyncMock()
    client.fetch_tier_status.return_value = TierState(tier="free", limit=10, used=0)
    client.fetch_service_status.return_value = ServiceAvailability(enabled=True)
    return client


@pytest.fixture
def poller(rag_client: AsyncMock) -> StatusPoller:
    return StatusPoller(rag_client, interval_seconds=30)
