"""QueryOrchestrator — drives one user question from submit to answer."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import StrEnum
from typing import TYPE_CHECKING

from disney_rag.analytics import RAG_QUERY_EVENT
from disney_rag.client.errors import ErrorKind, RagError
from disney_rag.conversation.models import Message, make_request_id

if TYPE_CHECKING:
    from disney_rag.analytics import Analytics
    from disney_rag.client.transport import RagClient
    from disney_rag.conversation.store import ConversationStore
    from disney_rag.status.poller import StatusPoller

logger = logging.getLogger(__name__)


class QueryState(StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class QueryOrchestrator:
    """Runs queries one at a time against the backend.

    ``submit()`` is synchronous: the user's question and a pending assistant
    placeholder are in the store before it returns. The request itself runs
    as a task that always completes, with success or with an error message;
    queries are never cancelled. After ``close()`` late completions leave the
    store and tier untouched.

    Args:
        client: Transport client.
        store: Conversation history.
        poller: Source of tier/availability gating and post-query tier refresh.
        analytics: Optional event sink for ``rag_query``.
    """

    def __init__(
        self,
        client: RagClient,
        store: ConversationStore,
        poller: StatusPoller,
        analytics: Analytics | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._poller = poller
        self._analytics = analytics
        self._state = QueryState.IDLE
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def is_submitting(self) -> bool:
        return self._state is QueryState.SUBMITTING

    def can_submit(self, question: str) -> bool:
        """Whether ``submit(question)`` would start a query right now."""
        return (
            not self._closed
            and bool(question.strip())
            and not self.is_submitting
            and self._poller.can_submit
        )

    def submit(self, question: str) -> asyncio.Task | None:
        """Start a query. Returns its task, or None if the submission was rejected.

        Must be called from within a running event loop.
        """
        if not self.can_submit(question):
            logger.debug(
                "Query rejected (blank=%s, submitting=%s, gated=%s, closed=%s)",
                not question.strip(),
                self.is_submitting,
                not self._poller.can_submit,
                self._closed,
            )
            return None

        text = question.strip()
        request_id = make_request_id()
        placeholder = Message.placeholder(request_id)
        self._store.append(Message.user(text, request_id))
        self._store.append(placeholder)
        self._state = QueryState.SUBMITTING

        task = asyncio.get_running_loop().create_task(self._run(text, placeholder.id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every query still in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Detach from the UI. Queries in flight still finish, silently."""
        self._closed = True

    # -- Internal --------------------------------------------------------------

    async def _run(self, text: str, message_id: str) -> None:
        started = time.monotonic()
        try:
            result = await self._client.submit_query(text)
        except RagError as exc:
            final = Message.failure(message_id, exc.kind, limit=exc.limit)
        except Exception:
            logger.exception("Unexpected error while querying the assistant")
            final = Message.failure(message_id, ErrorKind.REQUEST_FAILED)
        else:
            final = Message.answer(message_id, result)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        self._state = QueryState.FAILED if final.failed else QueryState.SUCCEEDED
        self._track(text, final, elapsed_ms)

        if self._closed:
            logger.debug("Query %s finished after close; result dropped", message_id)
            return
        try:
            self._store.replace_pending(message_id, final)
        except (KeyError, ValueError):
            # History was cleared (or the slot finalized) while the query ran
            logger.debug("Placeholder %s is gone; result dropped", message_id)
        await self._poller.refresh_tier()

    def _track(self, text: str, final: Message, elapsed_ms: int) -> None:
        if self._analytics is None:
            return
        tier = self._poller.tier
        try:
            self._analytics.track(
                RAG_QUERY_EVENT,
                {
                    "query_length": len(text),
                    "response_time_ms": elapsed_ms,
                    "citation_count": len(final.citations),
                    "user_tier": tier.tier if tier else "unknown",
                    "failed": final.failed,
                },
            )
        except Exception:
            logger.exception("Analytics tracking failed for rag_query")
