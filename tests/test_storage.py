"""Tests for storage backends, the payload codec and the background writer."""

import asyncio
import json

import pytest

from memflow.core.config import PersistenceConfig
from memflow.core.exceptions import MalformedSnapshotError, PersistenceError
from memflow.storage import create_store
from memflow.storage.base import KeyValueStore
from memflow.storage.codec import PAYLOAD_VERSION, decode_payload, encode_payload
from memflow.storage.memory import InMemoryKeyValueStore
from memflow.storage.sqlite import SQLiteKeyValueStore
from memflow.storage.writer import BackgroundWriter


class TestCodec:
    """Tests for the payload envelope."""

    def test_envelope(self):
        raw = encode_payload("profile", {"a": 1}, saved_at=42)

        envelope = json.loads(raw)
        assert envelope == {"version": PAYLOAD_VERSION, "kind": "profile", "saved_at": 42, "data": {"a": 1}}
        assert decode_payload(raw, kind="profile") == {"a": 1}

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            json.dumps([1, 2, 3]),
            json.dumps({"version": 1, "kind": "profile"}),
            json.dumps({"version": 99, "kind": "profile", "data": {}}),
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedSnapshotError):
            decode_payload(raw, kind="profile")

    def test_wrong_kind(self):
        raw = encode_payload("tier:short_term", {"items": []}, saved_at=0)

        with pytest.raises(MalformedSnapshotError):
            decode_payload(raw, kind="tier:long_term")

    def test_malformed_is_persistence_error(self):
        with pytest.raises(PersistenceError):
            decode_payload("", kind="profile")


class TestInMemoryKeyValueStore:
    """Tests for InMemoryKeyValueStore."""

    @pytest.mark.asyncio
    async def test_crud(self):
        store = InMemoryKeyValueStore()

        await store.set("a", "1")
        assert await store.get("a") == "1"
        assert await store.get("missing") is None

        assert await store.delete("a") is True
        assert await store.delete("a") is False

    @pytest.mark.asyncio
    async def test_keys_prefix(self):
        store = InMemoryKeyValueStore()
        for key in ("backup:working:1", "backup:records", "profile"):
            await store.set(key, "x")

        assert await store.keys("backup:") == ["backup:records", "backup:working:1"]
        assert len(await store.keys()) == 3

    def test_protocol(self):
        assert isinstance(InMemoryKeyValueStore(), KeyValueStore)


class TestSQLiteKeyValueStore:
    """Tests for SQLiteKeyValueStore."""

    @pytest.mark.asyncio
    async def test_crud(self, tmp_path):
        store = SQLiteKeyValueStore(str(tmp_path / "memflow.db"))
        try:
            await store.set("profile", "v1")
            await store.set("profile", "v2")

            assert await store.get("profile") == "v2"
            assert await store.get("missing") is None
            assert await store.delete("profile") is True
            assert await store.delete("profile") is False
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_keys_prefix_is_literal(self, tmp_path):
        """LIKE wildcards in the prefix are matched literally."""
        store = SQLiteKeyValueStore(str(tmp_path / "memflow.db"))
        try:
            for key in ("tier:short_term", "tier:shortXterm", "tier:long_term"):
                await store.set(key, "x")

            assert await store.keys("tier:short_") == ["tier:short_term"]
            assert await store.keys("tier:") == ["tier:long_term", "tier:shortXterm", "tier:short_term"]
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "memflow.db")

        first = SQLiteKeyValueStore(path)
        await first.set("profile", "saved")
        await first.close()

        second = SQLiteKeyValueStore(path)
        try:
            assert await second.get("profile") == "saved"
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_open_failure(self, tmp_path):
        store = SQLiteKeyValueStore(str(tmp_path / "missing" / "dir" / "memflow.db"))

        with pytest.raises(PersistenceError):
            await store.get("profile")


class TestCreateStore:
    """Tests for create_store."""

    def test_memory(self):
        assert isinstance(create_store("memory://"), InMemoryKeyValueStore)

    def test_sqlite(self, tmp_path):
        store = create_store(f"sqlite:///{tmp_path / 'memflow.db'}")

        assert isinstance(store, SQLiteKeyValueStore)
        assert store.db_path == str(tmp_path / "memflow.db")

    def test_unsupported(self):
        with pytest.raises(ValueError):
            create_store("redis://localhost")


class TestBackgroundWriter:
    """Tests for BackgroundWriter."""

    @pytest.mark.asyncio
    async def test_runs_jobs_in_order(self):
        writer = BackgroundWriter()
        seen = []

        async def job(n):
            seen.append(n)

        for n in range(5):
            assert writer.submit(f"job {n}", lambda n=n: job(n)) is True

        await writer.close()

        assert seen == [0, 1, 2, 3, 4]
        assert writer.completed == 5
        assert not writer.dead_letters

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        writer = BackgroundWriter(PersistenceConfig(max_attempts=3))
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise PersistenceError("transient")

        assert await writer.run("flaky", flaky) is True
        assert len(attempts) == 2
        assert not writer.dead_letters

    @pytest.mark.asyncio
    async def test_failure_goes_to_dead_letters(self):
        writer = BackgroundWriter(PersistenceConfig(max_attempts=2))
        attempts = []

        async def broken():
            attempts.append(1)
            raise PersistenceError("disk full")

        writer.submit("tier:short_term", broken)
        await writer.close()

        assert len(attempts) == 2
        assert len(writer.dead_letters) == 1
        assert writer.dead_letters[0].label == "tier:short_term"
        assert writer.dead_letters[0].error == "disk full"

    @pytest.mark.asyncio
    async def test_timeout_goes_to_dead_letters(self):
        writer = BackgroundWriter(PersistenceConfig(write_timeout=0.05, max_attempts=1))

        async def slow():
            await asyncio.sleep(1)

        assert await writer.run("slow", slow) is False
        assert "timed out" in writer.dead_letters[0].error

    @pytest.mark.asyncio
    async def test_queue_full(self):
        writer = BackgroundWriter(PersistenceConfig(queue_size=1))

        async def job():
            pass

        assert writer.submit("first", job) is True
        assert writer.submit("second", job) is False
        assert writer.dead_letters[0].error == "queue full"

        await writer.close()

    def test_submit_without_loop(self):
        """Outside an event loop the job is dropped, not raised."""
        writer = BackgroundWriter()

        async def job():
            pass

        assert writer.submit("orphan", job) is False
        assert len(writer.dead_letters) == 1

    def test_dead_letters_bounded(self):
        writer = BackgroundWriter(PersistenceConfig(dead_letter_size=2))

        async def job():
            pass

        for n in range(5):
            writer.submit(f"orphan {n}", job)

        assert [d.label for d in writer.dead_letters] == ["orphan 3", "orphan 4"]
