"""Working memory tier."""

from typing import Optional

from memflow.core.config import WorkingConfig
from memflow.memory.base import Clock
from memflow.memory.eviction import ImportanceEviction
from memflow.memory.tier import TierStore


class WorkingMemoryStore(TierStore):
    """The handful of salient items of the current exchange.

    Over capacity, the least important items are dropped immediately,
    with no decay weighting. Among equal importance the newest items stay.
    Survivors keep their newest-first order; pruning does not re-sort the
    tier by importance. Lives only as long as the process.

    Example:
        ```python
        working = WorkingMemoryStore()

        await working.add(MemoryItem(content="I lost my job today", importance=0.9))

        hits = await working.search(keywords=["job"])
        ```
    """

    name = "working"

    def __init__(self, config: Optional[WorkingConfig] = None, *, clock: Optional[Clock] = None):
        self.config = config or WorkingConfig()
        super().__init__(
            capacity=self.config.capacity,
            policy=ImportanceEviction(),
            clock=clock,
        )
