"""Persistence backends for memflow.

The engine only needs a small async key-value contract; everything it
writes is a versioned JSON envelope (see ``codec``).
"""

from typing import Optional

from memflow.core.config import Settings, get_settings
from memflow.storage.base import KeyValueStore
from memflow.storage.codec import PAYLOAD_VERSION, decode_payload, encode_payload
from memflow.storage.memory import InMemoryKeyValueStore
from memflow.storage.sqlite import SQLiteKeyValueStore
from memflow.storage.writer import BackgroundWriter, DeadLetter


def create_store(url: Optional[str] = None, settings: Optional[Settings] = None) -> KeyValueStore:
    """Create a key-value store from a URL.

    Supported schemes:
    - ``memory://``: in-process dict
    - ``sqlite:///path/to/file.db``: SQLite via aiosqlite
    """
    if url is None:
        url = (settings or get_settings()).storage_url

    if url.startswith("memory://"):
        return InMemoryKeyValueStore()
    if url.startswith("sqlite:///"):
        return SQLiteKeyValueStore(db_path=url[len("sqlite:///"):])

    raise ValueError(f"Unsupported storage url: {url}")


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "BackgroundWriter",
    "DeadLetter",
    "PAYLOAD_VERSION",
    "encode_payload",
    "decode_payload",
    "create_store",
]
