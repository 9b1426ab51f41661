"""Test configuration for memflow."""

import asyncio

import pytest

from memflow.core.config import (
    BackupConfig,
    LongTermConfig,
    MemoryConfig,
    PersistenceConfig,
    ShortTermConfig,
    WorkingConfig,
)
from memflow.core.exceptions import PersistenceError
from memflow.memory.base import MS_PER_HOUR
from memflow.storage.memory import InMemoryKeyValueStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, hours: float = 0, minutes: float = 0, seconds: float = 0) -> int:
        self.now += int(hours * MS_PER_HOUR + minutes * 60_000 + seconds * 1000)
        return self.now


class FailingStore(InMemoryKeyValueStore):
    """In-memory store whose writes fail for selected key prefixes."""

    def __init__(self, fail_prefixes: tuple[str, ...] = ("",)):
        super().__init__()
        self.fail_prefixes = fail_prefixes
        self.failed_writes = 0

    async def set(self, key: str, value: str) -> None:
        if any(key.startswith(prefix) for prefix in self.fail_prefixes):
            self.failed_writes += 1
            raise PersistenceError(f"simulated write failure for {key}")
        await super().set(key, value)


class SlowStore(InMemoryKeyValueStore):
    """In-memory store whose writes take ``delay`` seconds."""

    def __init__(self, delay: float = 1.0):
        super().__init__()
        self.delay = delay

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


@pytest.fixture
def clock():
    """A fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def store():
    """An empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def small_config():
    """A configuration with tiny capacities and fast persistence."""
    return MemoryConfig(
        working=WorkingConfig(capacity=3),
        short_term=ShortTermConfig(capacity=5),
        long_term=LongTermConfig(capacity=4),
        backup=BackupConfig(max_records_per_tier=2),
        persistence=PersistenceConfig(write_timeout=0.5, max_attempts=2),
    )


@pytest.fixture
def failing_store_factory():
    """Build stores whose writes fail for the given key prefixes."""
    return FailingStore


@pytest.fixture
def slow_store_factory():
    """Build stores whose writes are delayed."""
    return SlowStore
