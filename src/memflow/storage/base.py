"""Key-value storage protocol."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Durable storage used for checkpoints, backups and the profile.

    Values are opaque strings (the engine stores encoded JSON envelopes).
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the value under ``key`` or None."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete ``key``; return whether it existed."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix``."""
        ...

    async def close(self) -> None:
        """Release any underlying resources."""
        ...
