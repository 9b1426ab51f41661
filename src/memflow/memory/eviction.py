"""Eviction policies for capacity-bounded tiers.

Each tier keeps its items newest first and delegates the "what survives"
decision to one of these policies. Rankings use stable sorts, so among
equal scores the more recently inserted item wins. Survivors are returned
in tier order.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from memflow.memory.base import MemoryItem


@runtime_checkable
class EvictionPolicy(Protocol):
    """Chooses which items a tier keeps once it is over capacity."""

    name: str

    def select(self, items: list[MemoryItem], capacity: int, now: int) -> list[MemoryItem]:
        """Return the surviving items (at most ``capacity``), in tier order."""
        ...


def _keep_top(
    items: list[MemoryItem],
    capacity: int,
    key: Callable[[MemoryItem], float],
) -> list[MemoryItem]:
    if len(items) <= capacity:
        return list(items)
    ranked = sorted(items, key=key, reverse=True)
    keep = {id(item) for item in ranked[:capacity]}
    return [item for item in items if id(item) in keep]


class ImportanceEviction:
    """Keep the most important items; no decay weighting."""

    name = "importance"

    def select(self, items: list[MemoryItem], capacity: int, now: int) -> list[MemoryItem]:
        return _keep_top(items, capacity, key=lambda item: item.importance)


class FifoEviction:
    """Drop the oldest insertions."""

    name = "fifo"

    def select(self, items: list[MemoryItem], capacity: int, now: int) -> list[MemoryItem]:
        return list(items[:capacity])


class RetentionEviction:
    """Importance-retention pruning.

    value = importance * retention(age, importance, access_count)

    Items are ranked by value and only the top ``capacity`` survive.
    """

    name = "retention"

    def select(self, items: list[MemoryItem], capacity: int, now: int) -> list[MemoryItem]:
        return _keep_top(
            items,
            capacity,
            key=lambda item: item.importance * item.retention_at(now),
        )
