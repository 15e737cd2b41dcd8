"""ContentCache — explicitly initialized lookup of Disney content names."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from disney_rag.client.models import Citation

logger = logging.getLogger(__name__)


class ContentCacheNotInitializedError(RuntimeError):
    """Raised when the cache is read before ``initialize()``."""


class ContentCache:
    """Names of characters, movies, and parks keyed by ``(content_type, id)``.

    Construct it, call ``initialize()`` once with the loaded data, then pass
    it to whatever needs it. Reads before initialization raise.
    """

    def __init__(self) -> None:
        self._items: dict[tuple[str, int], str] | None = None

    @property
    def initialized(self) -> bool:
        return self._items is not None

    def initialize(self, items: Iterable[Mapping[str, object]]) -> int:
        """Load ``{"content_type", "content_id", "content_name"}`` records.

        Replaces any previous contents. Returns the number of entries.
        """
        loaded: dict[tuple[str, int], str] = {}
        for item in items:
            key = (str(item["content_type"]), int(item["content_id"]))
            loaded[key] = str(item["content_name"])
        self._items = loaded
        logger.debug("Content cache initialized with %d item(s)", len(loaded))
        return len(loaded)

    def _require(self) -> dict[tuple[str, int], str]:
        if self._items is None:
            msg = "ContentCache read before initialize()"
            raise ContentCacheNotInitializedError(msg)
        return self._items

    def name_for(self, content_type: str, content_id: int) -> str | None:
        return self._require().get((content_type, content_id))

    def __len__(self) -> int:
        return len(self._require())

    def label(self, citation: Citation) -> str:
        """Display label for a citation: cached name (falling back to the
        citation's own) and its detail link."""
        name = self.name_for(citation.content_type, citation.content_id) or citation.content_name
        return f"{name} ({citation.link})"
