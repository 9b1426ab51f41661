"""Shared tier store.

Every tier exposes the same contract (``add``, ``search``, ``prune``,
``clear``) and differs only in its eviction policy, its search ordering
and whether it checkpoints to storage.
"""

import asyncio
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from memflow.core.exceptions import MalformedSnapshotError
from memflow.memory.base import Clock, MemoryItem, SearchParams, now_ms
from memflow.memory.eviction import EvictionPolicy
from memflow.storage.base import KeyValueStore
from memflow.storage.codec import decode_payload, encode_payload
from memflow.storage.writer import BackgroundWriter

logger = structlog.get_logger()


class TierStore:
    """A capacity-bounded, monitor-style memory tier.

    Items are kept newest first. Every mutation, including eviction, runs
    under the tier's lock. Searches filter a copy of the item list and
    take the lock only to record accesses on the items they return, which
    are handed back as copies.

    When ``storage`` and ``checkpoint_key`` are both set, every mutation
    queues a best-effort checkpoint of the whole tier on the background
    writer.
    """

    name = "tier"

    def __init__(
        self,
        capacity: int,
        policy: EvictionPolicy,
        *,
        clock: Optional[Clock] = None,
        storage: Optional[KeyValueStore] = None,
        writer: Optional[BackgroundWriter] = None,
        checkpoint_key: Optional[str] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.capacity = capacity
        self.policy = policy
        self.checkpoint_key = checkpoint_key if storage is not None else None

        self._clock = clock or now_ms
        self._storage = storage
        self._writer = writer or (BackgroundWriter() if storage is not None else None)

        self._items: list[MemoryItem] = []
        self._lock = asyncio.Lock()
        self.last_updated: Optional[int] = None

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def add(self, item: MemoryItem) -> MemoryItem:
        """Insert at the head, pruning if over capacity."""
        async with self._lock:
            self._items.insert(0, item)
            self.last_updated = self._clock()

            if len(self._items) > self.capacity:
                self._prune_locked()

            self._checkpoint_locked()

        logger.debug("Memory added", tier=self.name, item_id=item.id, count=len(self._items))
        return item

    async def prune(self) -> int:
        """Apply the eviction policy. Returns the number of evicted items."""
        async with self._lock:
            evicted = self._prune_locked()
            if evicted:
                self._checkpoint_locked()
        return evicted

    async def search(self, params: Any = None, **kwargs: Any) -> list[MemoryItem]:
        """Filter, order and limit, then record an access on each hit."""
        results = self.find(params, **kwargs)
        if not results:
            return []
        return await self.record_access([item.id for item in results])

    def find(self, params: Any = None, **kwargs: Any) -> list[MemoryItem]:
        """Copies of the matching items in search order.

        Read-only: access counts are left untouched. Callers that hand the
        results on should follow up with ``record_access``.
        """
        params = SearchParams.parse(params, **kwargs)
        snapshot = list(self._items)

        results = self._order([item for item in snapshot if params.matches(item)], params)
        if params.limit is not None:
            results = results[:params.limit]

        return [item.model_copy(deep=True) for item in results]

    async def record_access(self, ids: Iterable[str]) -> list[MemoryItem]:
        """Record one retrieval on each held item in ``ids``.

        Ids this tier does not hold, or no longer holds, are skipped.
        Returns copies of the touched items in ``ids`` order.
        """
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []

        async with self._lock:
            held = {item.id: item for item in self._items}
            touched = [held[item_id] for item_id in wanted if item_id in held]
            if not touched:
                return []

            now = self._clock()
            for item in touched:
                item.touch(now)
            self._checkpoint_locked()

            return [item.model_copy(deep=True) for item in touched]

    async def clear(self) -> int:
        """Remove every item. Returns how many were removed."""
        async with self._lock:
            count = len(self._items)
            self._items.clear()
            self.last_updated = self._clock()
            self._checkpoint_locked()

        logger.info("Memory tier cleared", tier=self.name, removed=count)
        return count

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_all(self) -> list[MemoryItem]:
        """Copies of all items, newest first."""
        return [item.model_copy(deep=True) for item in self._items]

    async def count(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def status(self) -> dict[str, Any]:
        return {
            "item_count": len(self._items),
            "capacity": self.capacity,
            "last_updated": self.last_updated,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """Replace the tier with its last checkpoint.

        Returns False when there is nothing to load.

        Raises:
            MalformedSnapshotError: the checkpoint exists but is corrupt.
            PersistenceError: the store could not be read.
        """
        if self._storage is None or self.checkpoint_key is None:
            return False

        raw = await self._storage.get(self.checkpoint_key)
        if raw is None:
            return False

        data = decode_payload(raw, kind=self.checkpoint_key)
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise MalformedSnapshotError(f"{self.checkpoint_key} has no item list")

        try:
            items = [MemoryItem.model_validate(entry) for entry in data["items"]]
        except ValidationError as e:
            raise MalformedSnapshotError(f"Invalid item in {self.checkpoint_key}: {e}") from e

        await self.replace(items)
        logger.info("Memory tier loaded", tier=self.name, count=len(self._items))
        return True

    async def replace(self, items: list[MemoryItem]) -> None:
        """Swap in a new item list (newest first), enforcing capacity."""
        async with self._lock:
            self._items = sorted(items, key=lambda item: item.timestamp, reverse=True)
            if len(self._items) > self.capacity:
                self._prune_locked()
            self.last_updated = self._items[0].timestamp if self._items else None

    async def flush(self) -> None:
        """Wait for queued checkpoints to be written."""
        if self._writer is not None:
            await self._writer.drain()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _order(self, items: list[MemoryItem], params: SearchParams) -> list[MemoryItem]:
        """Tier-specific result ordering. Default: tier order (newest first)."""
        return items

    def _checkpoint_data(self, now: int) -> dict[str, Any]:
        return {"items": [item.model_dump(mode="json") for item in self._items]}

    def _prune_locked(self) -> int:
        before = len(self._items)
        self._items = self.policy.select(self._items, self.capacity, self._clock())
        evicted = before - len(self._items)
        if evicted:
            logger.debug("Memory pruned", tier=self.name, policy=self.policy.name, evicted=evicted)
        return evicted

    def _checkpoint_locked(self) -> None:
        if self.checkpoint_key is None or self._writer is None:
            return

        now = self._clock()
        try:
            payload = encode_payload(self.checkpoint_key, self._checkpoint_data(now), saved_at=now)
        except (TypeError, ValueError) as e:
            logger.error("Checkpoint encoding failed", tier=self.name, error=str(e))
            return

        storage = self._storage
        key = self.checkpoint_key
        self._writer.submit(key, lambda: storage.set(key, payload))
