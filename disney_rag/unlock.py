"""PremiumUnlock — exchange an access code for the premium tier."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from disney_rag.analytics import PREMIUM_UNLOCK_EVENT
from disney_rag.client.errors import RagError

if TYPE_CHECKING:
    from disney_rag.analytics import Analytics
    from disney_rag.client.models import TierState
    from disney_rag.client.transport import RagClient
    from disney_rag.status.poller import StatusPoller

logger = logging.getLogger(__name__)

EMPTY_CODE_MESSAGE = "Please enter an access code."


@dataclass(frozen=True)
class UnlockResult:
    """Outcome of one unlock attempt. Exactly one field is set."""

    tier: TierState | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.tier is not None


class PremiumUnlock:
    """Unlock affordance state: whether it's open and the last error shown."""

    def __init__(
        self,
        client: RagClient,
        poller: StatusPoller,
        analytics: Analytics | None = None,
    ) -> None:
        self._client = client
        self._poller = poller
        self._analytics = analytics
        self.is_open = False
        self.error: str | None = None

    def open(self) -> None:
        self.is_open = True
        self.error = None

    async def unlock(self, code: str) -> UnlockResult:
        """Submit *code*. Blank codes fail locally without a network call."""
        code = code.strip()
        if not code:
            self.error = EMPTY_CODE_MESSAGE
            return UnlockResult(error=EMPTY_CODE_MESSAGE)

        try:
            tier = await self._client.unlock_tier(code)
        except RagError as exc:
            self.error = exc.message
            self._track(success=False)
            return UnlockResult(error=exc.message)

        self._poller.replace_tier(tier)
        self.error = None
        self.is_open = False
        self._track(success=True)
        logger.info("Tier upgraded to %s (%d/%d used)", tier.tier, tier.used, tier.limit)
        return UnlockResult(tier=tier)

    def _track(self, *, success: bool) -> None:
        if self._analytics is None:
            return
        try:
            self._analytics.track(PREMIUM_UNLOCK_EVENT, {"success": success})
        except Exception:
            logger.exception("Analytics tracking failed for premium_unlock")
