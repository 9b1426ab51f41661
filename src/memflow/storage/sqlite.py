"""SQLite-backed key-value store."""

from datetime import datetime, timezone
from typing import Optional

from memflow.core.exceptions import PersistenceError


class SQLiteKeyValueStore:
    """Persistent key-value storage on top of aiosqlite.

    A single ``kv`` table keyed by text. Suitable for one process per
    session; there is no cross-process locking beyond what SQLite does.

    Example:
        ```python
        store = SQLiteKeyValueStore("memflow.db")
        await store.set("profile", "{...}")
        value = await store.get("profile")
        await store.close()
        ```
    """

    def __init__(self, db_path: str = "memflow.db", table_name: str = "kv"):
        self.db_path = db_path
        self.table_name = table_name
        self._conn = None
        self._initialized = False

    async def _ensure_initialized(self):
        """Ensure database is initialized."""
        if self._initialized:
            return

        try:
            import aiosqlite
        except ImportError:
            raise ImportError(
                "aiosqlite is required for SQLiteKeyValueStore. "
                "Install with: pip install aiosqlite"
            )

        try:
            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await self._conn.commit()
        except Exception as e:
            raise PersistenceError(f"Failed to open {self.db_path}: {e}") from e

        self._initialized = True

    async def get(self, key: str) -> Optional[str]:
        await self._ensure_initialized()

        cursor = await self._conn.execute(
            f"SELECT value FROM {self.table_name} WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        await self._ensure_initialized()

        await self._conn.execute(f"""
            INSERT OR REPLACE INTO {self.table_name} (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, datetime.now(timezone.utc).isoformat()))
        await self._conn.commit()

    async def delete(self, key: str) -> bool:
        await self._ensure_initialized()

        cursor = await self._conn.execute(
            f"DELETE FROM {self.table_name} WHERE key = ?",
            (key,),
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    async def keys(self, prefix: str = "") -> list[str]:
        await self._ensure_initialized()

        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        cursor = await self._conn.execute(
            f"SELECT key FROM {self.table_name} WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (escaped + "%",),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def close(self) -> None:
        """Close the connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False
