"""Snapshot backup and recovery for memory tiers."""

import asyncio
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, ValidationError

from memflow.core.config import BackupConfig
from memflow.core.exceptions import MalformedSnapshotError
from memflow.memory.base import Clock, MemoryItem, now_ms
from memflow.storage.base import KeyValueStore
from memflow.storage.codec import decode_payload, encode_payload

logger = structlog.get_logger()

RECORDS_KEY = "backup:records"
SNAPSHOT_KIND = "backup"


class BackupStatus(str, Enum):
    """Outcome of a snapshot write."""
    SUCCESS = "success"
    FAILED = "failed"


class BackupRecord(BaseModel):
    """Metadata describing one snapshot."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    timestamp: int
    tier_id: str
    item_count: int
    status: BackupStatus
    key: str
    error: Optional[str] = None


class BackupRecoveryManager:
    """Periodic snapshots of tier contents.

    Each snapshot payload lives under its own key, and the list of records
    is persisted separately. Only the ``max_records_per_tier`` most recent
    records of each tier are kept; older records and their payloads are
    evicted FIFO.

    A failed write never raises. It is recorded as a ``failed`` record so
    it stays visible.

    Example:
        ```python
        backups = BackupRecoveryManager(storage=store)

        record = await backups.snapshot("short_term", short_term.get_all())

        items = await backups.restore("short_term")
        ```
    """

    def __init__(
        self,
        config: Optional[BackupConfig] = None,
        *,
        storage: KeyValueStore,
        clock: Optional[Clock] = None,
    ):
        self.config = config or BackupConfig()
        self._storage = storage
        self._clock = clock or now_ms
        self._records: list[BackupRecord] = []  # newest first
        self._lock = asyncio.Lock()

    async def snapshot(self, tier_id: str, items: list[MemoryItem]) -> BackupRecord:
        """Write a snapshot of ``items`` for ``tier_id``. Never raises."""
        now = self._clock()
        record_id = uuid4().hex[:12]
        record = BackupRecord(
            id=record_id,
            timestamp=now,
            tier_id=tier_id,
            item_count=len(items),
            status=BackupStatus.SUCCESS,
            key=f"backup:{tier_id}:{now}:{record_id}",
        )

        try:
            payload = encode_payload(
                SNAPSHOT_KIND,
                {"tier_id": tier_id, "items": [item.model_dump(mode="json") for item in items]},
                saved_at=now,
            )
            await self._with_timeout(self._storage.set(record.key, payload))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            record.status = BackupStatus.FAILED
            record.error = str(e) or type(e).__name__
            logger.warning("Backup snapshot failed", tier=tier_id, error=record.error)

        async with self._lock:
            self._records.insert(0, record)
            evicted = self._evict_locked(tier_id)
            records_payload = self._encode_records_locked()

        for old in evicted:
            await self._quietly("delete", old.key, self._storage.delete(old.key))

        await self._quietly("save records", RECORDS_KEY, self._storage.set(RECORDS_KEY, records_payload))

        if record.status is BackupStatus.SUCCESS:
            logger.info("Backup snapshot created", tier=tier_id, items=len(items), key=record.key)
        return record

    async def restore(
        self,
        tier_id: str,
        timestamp: Optional[int] = None,
    ) -> Optional[list[MemoryItem]]:
        """Items of the most recent successful snapshot for ``tier_id``.

        With ``timestamp``, the snapshot taken at exactly that time.
        Returns None when no usable snapshot exists.
        """
        record = self._find(tier_id, timestamp)
        if record is None:
            logger.info("No backup available", tier=tier_id, timestamp=timestamp)
            return None

        try:
            raw = await self._with_timeout(self._storage.get(record.key))
            if raw is None:
                logger.warning("Backup payload missing", tier=tier_id, key=record.key)
                return None

            data = decode_payload(raw, kind=SNAPSHOT_KIND)
            if not isinstance(data, dict) or not isinstance(data.get("items"), list):
                raise MalformedSnapshotError(f"Backup {record.key} has no item list")

            try:
                items = [MemoryItem.model_validate(entry) for entry in data["items"]]
            except ValidationError as e:
                raise MalformedSnapshotError(f"Invalid item in {record.key}: {e}") from e

        except asyncio.CancelledError:
            raise
        except MalformedSnapshotError as e:
            logger.error("Backup payload malformed", tier=tier_id, key=record.key, error=str(e))
            return None
        except Exception as e:
            logger.error("Backup restore failed", tier=tier_id, key=record.key, error=str(e))
            return None

        logger.info("Backup restored", tier=tier_id, items=len(items), key=record.key)
        return items

    def records(self, tier_id: Optional[str] = None) -> list[BackupRecord]:
        """Backup records, newest first."""
        return [
            r.model_copy()
            for r in self._records
            if tier_id is None or r.tier_id == tier_id
        ]

    def status(self) -> dict[str, Any]:
        return {
            "item_count": len(self._records),
            "record_count": len(self._records),
            "last_updated": self._records[0].timestamp if self._records else None,
            "last_backup": self._records[0].timestamp if self._records else None,
            "failed_count": sum(1 for r in self._records if r.status is BackupStatus.FAILED),
        }

    async def load(self) -> bool:
        """Restore the record list from storage.

        Raises:
            MalformedSnapshotError: the stored record list is corrupt.
            PersistenceError: the store could not be read.
        """
        raw = await self._storage.get(RECORDS_KEY)
        if raw is None:
            return False

        data = decode_payload(raw, kind=RECORDS_KEY)
        if not isinstance(data, list):
            raise MalformedSnapshotError("Backup records are not a list")

        try:
            records = [BackupRecord.model_validate(entry) for entry in data]
        except ValidationError as e:
            raise MalformedSnapshotError(f"Invalid backup record: {e}") from e

        async with self._lock:
            self._records = sorted(records, key=lambda r: r.timestamp, reverse=True)

        logger.info("Backup records loaded", count=len(records))
        await self._collect_orphans()
        return True

    async def _collect_orphans(self) -> int:
        """Delete snapshot payloads that no record points to."""
        try:
            stored = await self._with_timeout(self._storage.keys("backup:"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Backup bookkeeping failed", action="list", key="backup:", error=str(e))
            return 0

        referenced = {r.key for r in self._records}
        referenced.add(RECORDS_KEY)
        orphans = [key for key in stored if key not in referenced]

        for key in orphans:
            await self._quietly("delete", key, self._storage.delete(key))

        if orphans:
            logger.info("Orphaned backups removed", count=len(orphans))
        return len(orphans)

    def _find(self, tier_id: str, timestamp: Optional[int]) -> Optional[BackupRecord]:
        for record in self._records:
            if record.tier_id != tier_id or record.status is not BackupStatus.SUCCESS:
                continue
            if timestamp is None or record.timestamp == timestamp:
                return record
        return None

    def _evict_locked(self, tier_id: str) -> list[BackupRecord]:
        """Drop the oldest records of ``tier_id`` beyond the per-tier limit."""
        evicted = []
        same_tier = [r for r in self._records if r.tier_id == tier_id]
        # Records are newest first, so the tail is the oldest
        for record in same_tier[self.config.max_records_per_tier:]:
            self._records.remove(record)
            evicted.append(record)
        return evicted

    def _encode_records_locked(self) -> str:
        return encode_payload(
            RECORDS_KEY,
            [r.model_dump(mode="json") for r in self._records],
            saved_at=self._clock(),
        )

    async def _with_timeout(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.config.timeout)

    async def _quietly(self, action: str, key: str, awaitable) -> None:
        try:
            await self._with_timeout(awaitable)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Backup bookkeeping failed", action=action, key=key, error=str(e))
