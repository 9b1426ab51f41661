"""Tests for backup and recovery."""

import pytest

from memflow.core.config import BackupConfig
from memflow.memory.backup import RECORDS_KEY, BackupRecoveryManager, BackupStatus
from memflow.memory.base import MemoryItem


def _items(*contents):
    return [MemoryItem(content=c) for c in contents]


class TestBackupRecoveryManager:
    """Tests for BackupRecoveryManager."""

    @pytest.mark.asyncio
    async def test_snapshot_and_restore(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        items = _items("one", "two")

        record = await backups.snapshot("short_term", items)

        assert record.status is BackupStatus.SUCCESS
        assert record.item_count == 2
        assert record.key in store
        assert RECORDS_KEY in store

        restored = await backups.restore("short_term")
        assert [i.id for i in restored] == [i.id for i in items]

    @pytest.mark.asyncio
    async def test_restore_latest(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        await backups.snapshot("short_term", _items("old"))
        clock.advance(minutes=5)
        await backups.snapshot("short_term", _items("new"))

        restored = await backups.restore("short_term")

        assert [i.content for i in restored] == ["new"]

    @pytest.mark.asyncio
    async def test_restore_by_timestamp(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        first = await backups.snapshot("short_term", _items("old"))
        clock.advance(minutes=5)
        await backups.snapshot("short_term", _items("new"))

        restored = await backups.restore("short_term", timestamp=first.timestamp)

        assert [i.content for i in restored] == ["old"]
        assert await backups.restore("short_term", timestamp=1) is None

    @pytest.mark.asyncio
    async def test_restore_unknown_tier(self, store):
        backups = BackupRecoveryManager(storage=store)
        assert await backups.restore("long_term") is None

    @pytest.mark.asyncio
    async def test_failed_write_is_recorded(self, clock, failing_store_factory):
        """A failed write never raises and shows up as a failed record."""
        store = failing_store_factory(fail_prefixes=("backup:short_term",))
        backups = BackupRecoveryManager(storage=store, clock=clock)

        record = await backups.snapshot("short_term", _items("one"))

        assert record.status is BackupStatus.FAILED
        assert "simulated write failure" in record.error
        assert backups.status()["failed_count"] == 1
        assert await backups.restore("short_term") is None

    @pytest.mark.asyncio
    async def test_timeout_is_recorded(self, clock, slow_store_factory):
        store = slow_store_factory(delay=1.0)
        backups = BackupRecoveryManager(BackupConfig(timeout=0.05), storage=store, clock=clock)

        record = await backups.snapshot("working", _items("one"))

        assert record.status is BackupStatus.FAILED
        assert backups.records("working")[0].status is BackupStatus.FAILED

    @pytest.mark.asyncio
    async def test_records_capped_per_tier(self, store, clock):
        """Only the newest records of a tier are kept; evicted payloads are deleted."""
        backups = BackupRecoveryManager(BackupConfig(max_records_per_tier=2), storage=store, clock=clock)

        records = []
        for i in range(3):
            records.append(await backups.snapshot("short_term", _items(f"v{i}")))
            clock.advance(minutes=5)
        other = await backups.snapshot("long_term", _items("kept"))

        kept = backups.records("short_term")
        assert [r.id for r in kept] == [records[2].id, records[1].id]
        assert records[0].key not in store
        assert backups.records("long_term")[0].id == other.id

    @pytest.mark.asyncio
    async def test_restore_malformed_payload(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        record = await backups.snapshot("short_term", _items("one"))
        await store.set(record.key, "garbage")

        assert await backups.restore("short_term") is None

    @pytest.mark.asyncio
    async def test_load_records(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        record = await backups.snapshot("short_term", _items("one"))

        reloaded = BackupRecoveryManager(storage=store, clock=clock)

        assert await reloaded.load() is True
        assert [r.id for r in reloaded.records()] == [record.id]
        restored = await reloaded.restore("short_term")
        assert [i.content for i in restored] == ["one"]

    @pytest.mark.asyncio
    async def test_load_removes_orphaned_payloads(self, store, clock):
        """Payloads left behind by an interrupted snapshot are cleaned up on load."""
        backups = BackupRecoveryManager(storage=store, clock=clock)
        record = await backups.snapshot("short_term", _items("one"))
        await store.set("backup:short_term:1:deadbeef", "stale")
        await store.set("profile", "unrelated")

        reloaded = BackupRecoveryManager(storage=store, clock=clock)
        assert await reloaded.load() is True

        assert await store.keys("backup:") == sorted([RECORDS_KEY, record.key])
        assert "profile" in store

    @pytest.mark.asyncio
    async def test_status(self, store, clock):
        backups = BackupRecoveryManager(storage=store, clock=clock)
        assert backups.status()["last_backup"] is None

        await backups.snapshot("working", [])

        status = backups.status()
        assert status["record_count"] == 1
        assert status["last_backup"] == clock()
        assert status["failed_count"] == 0
