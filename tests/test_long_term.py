"""Tests for the long-term memory tier."""

import pytest

from memflow.core.config import LongTermConfig
from memflow.memory.base import MemoryItem, SearchParams
from memflow.memory.long_term import CHECKPOINT_KEY, LongTermMemoryStore
from memflow.storage.codec import decode_payload


class TestLongTermMemoryStore:
    """Tests for LongTermMemoryStore."""

    @pytest.mark.asyncio
    async def test_retention_pruning(self, clock):
        """A faded, unimportant item is the first to go."""
        memory = LongTermMemoryStore(LongTermConfig(capacity=3), clock=clock)

        await memory.add(MemoryItem(content="old and minor", importance=0.3, timestamp=clock()))
        clock.advance(hours=48)

        for i in range(3):
            await memory.add(MemoryItem(content=f"recent {i}", importance=0.9, timestamp=clock()))

        contents = {item.content for item in memory.get_all()}
        assert len(contents) == 3
        assert "old and minor" not in contents

    @pytest.mark.asyncio
    async def test_important_item_survives_thirty_days(self, clock):
        """Under capacity, nothing is dropped no matter how faded."""
        memory = LongTermMemoryStore(clock=clock)
        item = await memory.add(MemoryItem(content="My father passed away", importance=0.9, timestamp=clock()))

        clock.advance(hours=720)
        await memory.prune()

        stored = memory.get_all()
        assert [s.id for s in stored] == [item.id]
        assert stored[0].retention_at(clock()) < stored[0].retention_at(item.timestamp)

    @pytest.mark.asyncio
    async def test_minor_item_fades_within_a_day(self, clock):
        memory = LongTermMemoryStore(clock=clock)
        await memory.add(MemoryItem(content="minor", importance=0.2, timestamp=clock()))

        clock.advance(hours=24)

        assert memory.get_all()[0].retention_at(clock()) < 0.05

    @pytest.mark.asyncio
    async def test_capacity_invariant(self, clock):
        memory = LongTermMemoryStore(LongTermConfig(capacity=5), clock=clock)

        for i in range(20):
            clock.advance(hours=1)
            await memory.add(MemoryItem(content=f"m{i}", importance=(i % 10) / 10, timestamp=clock()))
            assert len(memory) <= 5

    def test_score(self, clock):
        """score = 0.4 * importance + 0.2 * retention + 0.3 * keywords + 0.1 * topics"""
        memory = LongTermMemoryStore(clock=clock)
        item = MemoryItem(content="work and sleep", importance=0.5, topics=["work"], timestamp=clock())
        params = SearchParams(keywords=["work", "holiday"], topics=["work"])

        score = memory.score(item, params)

        assert score == pytest.approx(0.4 * 0.5 + 0.2 * 1.0 + 0.3 * 0.5 + 0.1 * 1.0)

    @pytest.mark.asyncio
    async def test_search_ranked_by_score(self, clock):
        """Better keyword coverage ranks first at equal importance."""
        memory = LongTermMemoryStore(clock=clock)
        await memory.add(MemoryItem(content="work only", importance=0.8, timestamp=clock()))
        await memory.add(MemoryItem(content="sleep and work", importance=0.8, timestamp=clock()))
        await memory.add(MemoryItem(content="unrelated", importance=1.0, timestamp=clock()))

        results = await memory.search(keywords=["sleep", "work"])

        assert [r.content for r in results] == ["sleep and work", "work only"]

    @pytest.mark.asyncio
    async def test_search_importance_without_filters(self, clock):
        memory = LongTermMemoryStore(clock=clock)
        await memory.add(MemoryItem(content="a", importance=0.8, timestamp=clock()))
        await memory.add(MemoryItem(content="b", importance=0.95, timestamp=clock()))

        results = await memory.search()

        assert [r.content for r in results] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_access_bump_after_limit(self, clock):
        """Only the items actually returned are strengthened."""
        memory = LongTermMemoryStore(clock=clock)
        for importance in (0.8, 0.9, 1.0):
            await memory.add(MemoryItem(content=f"work {importance}", importance=importance, timestamp=clock()))

        results = await memory.search(keywords=["work"], limit=1)

        counts = {item.content: item.access_count for item in memory.get_all()}
        assert [r.content for r in results] == ["work 1.0"]
        assert counts == {"work 1.0": 1, "work 0.9": 0, "work 0.8": 0}

    @pytest.mark.asyncio
    async def test_refresh_retention(self, store, clock):
        """Maintenance recomputes retention and checkpoints it."""
        memory = LongTermMemoryStore(storage=store, clock=clock)
        item = await memory.add(MemoryItem(content="important", importance=0.9, timestamp=clock()))
        clock.advance(hours=5)

        snapshot = await memory.refresh_retention()
        await memory.flush()

        assert set(snapshot) == {item.id}
        assert 0.0 < snapshot[item.id] < 1.0
        assert memory.last_refreshed == clock()

        data = decode_payload(await store.get(CHECKPOINT_KEY), kind=CHECKPOINT_KEY)
        assert data["retention"][item.id] == pytest.approx(snapshot[item.id])
        assert data["items"][0]["id"] == item.id

    @pytest.mark.asyncio
    async def test_reload(self, store, clock):
        memory = LongTermMemoryStore(storage=store, clock=clock)
        await memory.add(MemoryItem(content="kept across sessions", importance=0.9, timestamp=clock()))
        await memory.flush()

        restored = LongTermMemoryStore(storage=store, clock=clock)

        assert await restored.load() is True
        assert [i.content for i in restored.get_all()] == ["kept across sessions"]
