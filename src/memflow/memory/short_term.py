"""Short-term memory tier."""

from typing import Optional

from memflow.core.config import ShortTermConfig
from memflow.memory.base import Clock
from memflow.memory.eviction import FifoEviction
from memflow.memory.tier import TierStore
from memflow.storage.base import KeyValueStore
from memflow.storage.writer import BackgroundWriter

CHECKPOINT_KEY = "tier:short_term"


class ShortTermMemoryStore(TierStore):
    """Recent-session buffer (roughly the last 30-60 minutes).

    Over capacity, the oldest insertion falls off. Every mutation is
    followed by a best-effort checkpoint, so the buffer survives a process
    restart within the same session.

    ``last_updated`` drives conversation boundary detection.
    """

    name = "short_term"

    def __init__(
        self,
        config: Optional[ShortTermConfig] = None,
        *,
        clock: Optional[Clock] = None,
        storage: Optional[KeyValueStore] = None,
        writer: Optional[BackgroundWriter] = None,
    ):
        self.config = config or ShortTermConfig()
        super().__init__(
            capacity=self.config.capacity,
            policy=FifoEviction(),
            clock=clock,
            storage=storage if self.config.checkpoint else None,
            writer=writer,
            checkpoint_key=CHECKPOINT_KEY,
        )
