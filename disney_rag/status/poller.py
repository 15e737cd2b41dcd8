"""StatusPoller — keeps tier and kill-switch state fresh on a fixed interval."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from disney_rag.client.errors import RagError
from disney_rag.config import settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from disney_rag.client.models import ServiceAvailability, TierState
    from disney_rag.client.transport import RagClient

logger = logging.getLogger(__name__)

POLL_JOB_ID = "rag-status-poll"


@dataclass(frozen=True)
class StatusSnapshot:
    """Tier and availability committed together by one poll tick.

    Either field is None until the first successful fetch.
    """

    tier: TierState | None = None
    availability: ServiceAvailability | None = None

    @property
    def service_enabled(self) -> bool:
        return self.availability is None or self.availability.enabled

    @property
    def can_submit(self) -> bool:
        """False when the kill switch is off or the hourly quota is used up."""
        if not self.service_enabled:
            return False
        return self.tier is None or not self.tier.exhausted


class StatusPoller:
    """Polls ``/api/rag/tier-status`` and ``/api/rag/status``.

    Each tick fetches both concurrently and commits them as one
    ``StatusSnapshot``. Overlapping ticks are allowed; whichever finishes
    last wins. A tick where either fetch fails commits nothing.

    Args:
        client: Transport client.
        interval_seconds: Poll period (default from settings).
    """

    def __init__(self, client: RagClient, interval_seconds: int | None = None) -> None:
        self._client = client
        self._interval = interval_seconds or settings.status_poll_interval_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._snapshot = StatusSnapshot()
        self._listeners: list[Callable[[StatusSnapshot], None]] = []
        self._inflight: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    @property
    def tier(self) -> TierState | None:
        return self._snapshot.tier

    @property
    def availability(self) -> ServiceAvailability | None:
        return self._snapshot.availability

    @property
    def can_submit(self) -> bool:
        return self._snapshot.can_submit

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def subscribe(self, listener: Callable[[StatusSnapshot], None]) -> None:
        """Call *listener* with every committed snapshot until ``stop()``."""
        self._listeners.append(listener)

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start polling. The first tick fires immediately."""
        if self.running:
            return
        self._stopped = False
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self._interval, timezone="UTC"),
            id=POLL_JOB_ID,
            next_run_time=datetime.now(UTC),
            max_instances=5,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Status poller started (interval=%ds)", self._interval)

    async def stop(self) -> None:
        """Stop the timer, cancel in-flight ticks, and drop listeners."""
        self._stopped = True
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Status poller stopped")
        self._scheduler = None
        inflight = list(self._inflight)
        for task in inflight:
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        self._inflight.clear()
        self._listeners.clear()

    # -- Refresh ---------------------------------------------------------------

    async def refresh(self) -> bool:
        """Run one tick. Returns True if a new snapshot was committed."""
        results = await asyncio.gather(
            self._client.fetch_tier_status(),
            self._client.fetch_service_status(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        tier, availability = results
        if isinstance(tier, Exception) or isinstance(availability, Exception):
            failed = tier if isinstance(tier, Exception) else availability
            logger.warning("Status poll failed, keeping last known state: %r", failed)
            return False
        return self._commit(StatusSnapshot(tier=tier, availability=availability))

    async def refresh_tier(self) -> TierState | None:
        """Re-fetch only the tier (after a query). Failures keep the last tier."""
        try:
            tier = await self._client.fetch_tier_status()
        except RagError as exc:
            logger.debug("Tier refresh failed, keeping last known tier: %r", exc)
            return None
        self._commit(dataclasses.replace(self._snapshot, tier=tier))
        return tier

    def replace_tier(self, tier: TierState) -> None:
        """Replace the tier wholesale (after a successful premium unlock)."""
        self._commit(dataclasses.replace(self._snapshot, tier=tier))

    # -- Internal --------------------------------------------------------------

    async def _tick(self) -> None:
        """Callback invoked by APScheduler."""
        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
        try:
            await self.refresh()
        finally:
            if task is not None:
                self._inflight.discard(task)

    def _commit(self, snapshot: StatusSnapshot) -> bool:
        if self._stopped:
            logger.debug("Poller stopped; dropping late status update")
            return False
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Status listener failed")
        return True
