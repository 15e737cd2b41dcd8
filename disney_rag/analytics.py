"""Fire-and-forget analytics via the GA4 Measurement Protocol.

Events are only sent when ``ENVIRONMENT=production`` and a measurement ID and
API secret are configured. Everywhere else ``track()`` logs the event at
debug level and returns.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from disney_rag.config import settings

logger = logging.getLogger(__name__)

GA_COLLECT_URL = "https://www.google-analytics.com/mp/collect"

RAG_QUERY_EVENT = "rag_query"
PREMIUM_UNLOCK_EVENT = "premium_unlock"


class Analytics:
    """Emits named events without ever blocking or failing the caller."""

    def __init__(
        self,
        *,
        enabled: bool | None = None,
        measurement_id: str | None = None,
        api_secret: str | None = None,
        client_id: str | None = None,
    ) -> None:
        self._measurement_id = measurement_id or settings.ga_measurement_id
        self._api_secret = api_secret or settings.ga_api_secret
        self._client_id = client_id or settings.session_id
        if enabled is None:
            enabled = settings.is_production
        self._enabled = bool(enabled and self._measurement_id and self._api_secret)
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def track(self, event: str, params: dict[str, Any] | None = None) -> asyncio.Task | None:
        """Schedule *event* for delivery. Returns the send task, if any."""
        params = params or {}
        if not self._enabled:
            logger.debug("[Analytics] Skipped (dev mode): %s %s", event, params)
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[Analytics] No running loop, dropping %s", event)
            return None
        task = loop.create_task(self._send(event, params))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self) -> None:
        """Wait for events still in flight (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _send(self, event: str, params: dict[str, Any]) -> None:
        body = {"client_id": self._client_id, "events": [{"name": event, "params": params}]}
        query = {"measurement_id": self._measurement_id, "api_secret": self._api_secret}
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(GA_COLLECT_URL, params=query, json=body)
            if resp.status_code >= 300:
                logger.warning("Analytics event %s rejected: status=%d", event, resp.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Analytics event %s not delivered: %s", event, exc)
