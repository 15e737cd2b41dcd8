"""Tests for QueryOrchestrator — the query lifecycle state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from disney_rag.client.errors import ErrorKind, RagError
from disney_rag.client.models import Citation, QueryResult, ServiceAvailability, TierState
from disney_rag.client.transport import RagClient
from disney_rag.conversation.store import ConversationStore
from disney_rag.orchestrator import QueryOrchestrator, QueryState
from disney_rag.status.poller import StatusPoller

MICKEY = QueryResult(
    answer="Mickey is...",
    sources=[
        Citation(
            content_type="character",
            content_id=1,
            content_name="Mickey Mouse",
            similarity_score=0.92,
            excerpt="...",
        )
    ],
    query="Tell me about Mickey Mouse",
    cached=False,
)


@pytest.fixture
def analytics() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(
    rag_client: AsyncMock,
    store: ConversationStore,
    poller: StatusPoller,
    analytics: MagicMock,
) -> QueryOrchestrator:
    rag_client.submit_query.return_value = MICKEY
    return QueryOrchestrator(rag_client, store, poller, analytics)


# -- Submission gating -------------------------------------------------------------


async def test_submit_appends_user_message_synchronously(
    orchestrator: QueryOrchestrator, store: ConversationStore
) -> None:
    task = orchestrator.submit("  Tell me about Mickey Mouse  ")

    assert task is not None
    messages = store.all()
    user_messages = [m for m in messages if m.role == "user"]
    assert len(user_messages) == 1
    assert user_messages[0].text == "Tell me about Mickey Mouse"
    assert messages[-1].pending is True
    assert orchestrator.state is QueryState.SUBMITTING
    await task


@pytest.mark.parametrize("blank", ["", "   ", "\n\t"])
async def test_blank_input_is_noop(
    orchestrator: QueryOrchestrator,
    store: ConversationStore,
    rag_client: AsyncMock,
    blank: str,
) -> None:
    assert orchestrator.submit(blank) is None
    assert store.all() == []
    rag_client.submit_query.assert_not_called()


async def test_submit_while_submitting_is_noop(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    release = asyncio.Event()

    async def slow_query(question):
        await release.wait()
        return MICKEY

    rag_client.submit_query.side_effect = slow_query

    first = orchestrator.submit("first")
    count = len(store)
    assert orchestrator.submit("second") is None
    assert len(store) == count

    release.set()
    await first
    rag_client.submit_query.assert_awaited_once_with("first")


async def test_submit_with_no_remaining_queries_is_noop(
    orchestrator: QueryOrchestrator,
    poller: StatusPoller,
    store: ConversationStore,
    rag_client: AsyncMock,
) -> None:
    poller.replace_tier(TierState(tier="free", limit=10, used=10))

    assert orchestrator.submit("anything") is None
    assert store.all() == []
    rag_client.submit_query.assert_not_called()


async def test_submit_with_kill_switch_off_is_noop(
    orchestrator: QueryOrchestrator,
    poller: StatusPoller,
    store: ConversationStore,
    rag_client: AsyncMock,
) -> None:
    rag_client.fetch_service_status.return_value = ServiceAvailability(enabled=False)
    await poller.refresh()

    assert orchestrator.submit("anything") is None
    assert store.all() == []


async def test_can_submit_again_after_completion(orchestrator: QueryOrchestrator) -> None:
    await orchestrator.submit("one")
    task = orchestrator.submit("two")
    assert task is not None
    await task


# -- Outcomes ----------------------------------------------------------------------


async def test_success_finalizes_placeholder(
    orchestrator: QueryOrchestrator, store: ConversationStore
) -> None:
    await orchestrator.submit("Tell me about Mickey Mouse")

    user, assistant = store.all()
    assert user.role == "user"
    assert assistant.role == "assistant"
    assert assistant.pending is False
    assert assistant.text == "Mickey is..."
    assert len(assistant.citations) == 1
    assert assistant.cached is False
    assert assistant.error_kind is None
    assert orchestrator.state is QueryState.SUCCEEDED


async def test_rate_limited_failure(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    rag_client.submit_query.side_effect = RagError(ErrorKind.RATE_LIMITED, status=429, limit=10)

    await orchestrator.submit("hi")

    assistant = store.all()[-1]
    assert assistant.error_kind is ErrorKind.RATE_LIMITED
    assert "10" in assistant.text
    assert assistant.citations == []
    assert orchestrator.state is QueryState.FAILED


async def test_service_unavailable_with_concurrent_kill_switch_tick(
    orchestrator: QueryOrchestrator,
    store: ConversationStore,
    poller: StatusPoller,
    rag_client: AsyncMock,
) -> None:
    rag_client.submit_query.side_effect = RagError(ErrorKind.SERVICE_UNAVAILABLE, status=503)
    rag_client.fetch_service_status.return_value = ServiceAvailability(enabled=False)

    task = orchestrator.submit("hi")
    await asyncio.gather(task, poller.refresh())

    assert store.all()[-1].error_kind is ErrorKind.SERVICE_UNAVAILABLE
    assert poller.availability.enabled is False


async def test_user_message_survives_failure(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    rag_client.submit_query.side_effect = RagError(ErrorKind.NETWORK_ERROR)

    await orchestrator.submit("are you there?")

    assert store.all()[0].text == "are you there?"


async def test_unexpected_exception_becomes_request_failed(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    rag_client.submit_query.side_effect = RuntimeError("boom")

    await orchestrator.submit("hi")

    assistant = store.all()[-1]
    assert assistant.error_kind is ErrorKind.REQUEST_FAILED
    assert "boom" not in assistant.text


# -- Tier refresh ------------------------------------------------------------------


async def test_tier_refreshed_after_answer(
    orchestrator: QueryOrchestrator,
    store: ConversationStore,
    poller: StatusPoller,
    rag_client: AsyncMock,
) -> None:
    seen: list[list[str]] = []

    async def tier_status():
        seen.append([m.id for m in store.all() if not m.pending])
        return TierState(tier="free", limit=10, used=1)

    rag_client.fetch_tier_status.side_effect = tier_status

    await orchestrator.submit("hi")

    # Both messages were final before the tier refresh ran
    assert len(seen) == 1
    assert len(seen[0]) == 2
    assert poller.tier.used == 1


async def test_tier_refreshed_after_failure(
    orchestrator: QueryOrchestrator, rag_client: AsyncMock
) -> None:
    rag_client.submit_query.side_effect = RagError(ErrorKind.INVALID_INPUT, status=400)

    await orchestrator.submit("hi")

    rag_client.fetch_tier_status.assert_awaited_once()


async def test_tier_refresh_failure_is_ignored(
    orchestrator: QueryOrchestrator,
    store: ConversationStore,
    poller: StatusPoller,
    rag_client: AsyncMock,
) -> None:
    previous = TierState(tier="premium", limit=100, used=3)
    poller.replace_tier(previous)
    rag_client.fetch_tier_status.side_effect = RagError(ErrorKind.UNKNOWN)

    await orchestrator.submit("hi")

    assert store.all()[-1].text == "Mickey is..."
    assert poller.tier == previous


def _backend(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/rag/query":
        return httpx.Response(200, json=MICKEY.model_dump())
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")


async def test_undecodable_tier_refresh_is_ignored(store: ConversationStore) -> None:
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(_backend), base_url="http://backend.test"
    )
    client = RagClient(base_url="http://backend.test", http_client=http)
    poller = StatusPoller(client, interval_seconds=30)
    previous = TierState(tier="free", limit=10, used=2)
    poller.replace_tier(previous)
    orchestrator = QueryOrchestrator(client, store, poller)

    task = orchestrator.submit("Tell me about Mickey Mouse")
    await task
    await http.aclose()

    assert task.exception() is None
    assert store.all()[-1].text == "Mickey is..."
    assert poller.tier == previous


# -- Clearing mid-flight -----------------------------------------------------------


async def test_clear_while_query_in_flight(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    release = asyncio.Event()

    async def slow_query(question):
        await release.wait()
        return MICKEY

    rag_client.submit_query.side_effect = slow_query

    task = orchestrator.submit("hi")
    store.clear()
    release.set()
    await task

    assert task.exception() is None
    assert store.all() == []
    assert orchestrator.state is QueryState.SUCCEEDED
    rag_client.fetch_tier_status.assert_awaited_once()


# -- Analytics ---------------------------------------------------------------------


async def test_analytics_on_success(
    orchestrator: QueryOrchestrator, poller: StatusPoller, analytics: MagicMock
) -> None:
    poller.replace_tier(TierState(tier="premium", limit=100, used=0))

    await orchestrator.submit("Tell me about Mickey Mouse")

    analytics.track.assert_called_once()
    event, params = analytics.track.call_args.args
    assert event == "rag_query"
    assert params["query_length"] == len("Tell me about Mickey Mouse")
    assert params["citation_count"] == 1
    assert params["user_tier"] == "premium"
    assert params["failed"] is False
    assert params["response_time_ms"] >= 0


async def test_analytics_on_failure(
    orchestrator: QueryOrchestrator, analytics: MagicMock, rag_client: AsyncMock
) -> None:
    rag_client.submit_query.side_effect = RagError(ErrorKind.NETWORK_ERROR)

    await orchestrator.submit("hi")

    _, params = analytics.track.call_args.args
    assert params["citation_count"] == 0
    assert params["failed"] is True


async def test_analytics_error_does_not_break_query(
    orchestrator: QueryOrchestrator, store: ConversationStore, analytics: MagicMock
) -> None:
    analytics.track.side_effect = RuntimeError("analytics down")

    await orchestrator.submit("hi")

    assert store.all()[-1].pending is False
    assert orchestrator.state is QueryState.SUCCEEDED


# -- close -------------------------------------------------------------------------


async def test_completion_after_close_is_noop(
    orchestrator: QueryOrchestrator, store: ConversationStore, rag_client: AsyncMock
) -> None:
    release = asyncio.Event()

    async def slow_query(question):
        await release.wait()
        return MICKEY

    rag_client.submit_query.side_effect = slow_query

    task = orchestrator.submit("hi")
    orchestrator.close()
    release.set()
    await task

    assert task.exception() is None
    assert store.all()[-1].pending is True
    rag_client.fetch_tier_status.assert_not_called()


async def test_submit_after_close_is_noop(
    orchestrator: QueryOrchestrator, store: ConversationStore
) -> None:
    orchestrator.close()
    assert orchestrator.submit("hi") is None
    assert store.all() == []


async def test_drain_waits_for_inflight(orchestrator: QueryOrchestrator, store: ConversationStore) -> None:
    orchestrator.submit("hi")
    await orchestrator.drain()
    assert store.all()[-1].pending is False
