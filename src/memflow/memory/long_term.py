"""Long-term memory tier with forgetting-curve pruning."""

from typing import Any, Optional

import structlog

from memflow.core.config import LongTermConfig
from memflow.memory.base import Clock, MemoryItem, SearchParams
from memflow.memory.eviction import RetentionEviction
from memflow.memory.tier import TierStore
from memflow.storage.base import KeyValueStore
from memflow.storage.writer import BackgroundWriter

logger = structlog.get_logger()

CHECKPOINT_KEY = "tier:long_term"


class LongTermMemoryStore(TierStore):
    """Durable, cross-session tier.

    Admission is decided by the controller; ``add`` always inserts. Once
    over capacity, every item is valued as

        value = importance * retention(age, importance, access_count)

    and only the ``capacity`` most valuable items are kept. This decides
    what survives long after a session ends.

    Searches are ranked by a relevance score::

        score = 0.4 * importance + 0.2 * retention
              + 0.3 * keyword_match_ratio + 0.1 * topic_match_ratio

    Every returned item has its access count bumped, which strengthens it
    against future decay.

    Example:
        ```python
        long_term = LongTermMemoryStore(storage=InMemoryKeyValueStore())

        await long_term.add(MemoryItem(content="My father passed away", importance=0.95))

        hits = await long_term.search(keywords=["father"], limit=5)
        await long_term.refresh_retention()
        ```
    """

    name = "long_term"

    def __init__(
        self,
        config: Optional[LongTermConfig] = None,
        *,
        clock: Optional[Clock] = None,
        storage: Optional[KeyValueStore] = None,
        writer: Optional[BackgroundWriter] = None,
    ):
        self.config = config or LongTermConfig()
        super().__init__(
            capacity=self.config.capacity,
            policy=RetentionEviction(),
            clock=clock,
            storage=storage,
            writer=writer,
            checkpoint_key=CHECKPOINT_KEY,
        )
        self.last_refreshed: Optional[int] = None

    def score(self, item: MemoryItem, params: SearchParams, now: Optional[int] = None) -> float:
        """Relevance score of ``item`` for ``params``."""
        now = self._clock() if now is None else now
        cfg = self.config

        score = cfg.w_importance * item.importance
        score += cfg.w_retention * item.retention_at(now)

        if params.keywords:
            score += cfg.w_keywords * params.keyword_hits(item) / len(params.keywords)

        if params.topics:
            score += cfg.w_topics * params.topic_hits(item) / len(params.topics)

        return score

    async def refresh_retention(self) -> dict[str, float]:
        """Recompute retention for every item and persist a snapshot.

        Returns the ``{item_id: retention}`` map.
        """
        async with self._lock:
            now = self._clock()
            snapshot = {item.id: item.retention_at(now) for item in self._items}
            self.last_refreshed = now
            self._checkpoint_locked()

        logger.info("Long-term retention refreshed", count=len(snapshot))
        return snapshot

    def _order(self, items: list[MemoryItem], params: SearchParams) -> list[MemoryItem]:
        now = self._clock()
        return sorted(items, key=lambda item: self.score(item, params, now), reverse=True)

    def _checkpoint_data(self, now: int) -> dict[str, Any]:
        data = super()._checkpoint_data(now)
        data["retention"] = {item.id: item.retention_at(now) for item in self._items}
        return data
