"""Cross-tier deduplication and ranking."""

import hashlib
import math
import re

from memflow.memory.base import MemoryItem, SearchParams

_WHITESPACE = re.compile(r"\s+")

DEDUP_PREFIX_CHARS = 50


def content_key(content: str, prefix: int = DEDUP_PREFIX_CHARS) -> str:
    """Similarity hash: case-folded, whitespace-collapsed, first ``prefix`` chars."""
    normalized = _WHITESPACE.sub(" ", content.casefold()).strip()[:prefix]
    return hashlib.md5(normalized.encode()).hexdigest()[:16]


def deduplicate(items: list[MemoryItem]) -> list[MemoryItem]:
    """Keep the first item per content key."""
    seen: set[str] = set()
    unique = []
    for item in items:
        key = content_key(item.content)
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def recency(item: MemoryItem, now: int, decay: float = 0.995) -> float:
    """Exponential recency: ``decay ** hours_since_creation``."""
    return math.pow(decay, item.age_hours(now))


ACCESS_WEIGHT = 0.05


def relevance(item: MemoryItem, params: SearchParams) -> float:
    """Keyword match ratio plus a linear bonus per recorded access.

    The access bonus is linear so that a search, which bumps every
    candidate by one, never reorders the candidates of the next
    identical search.
    """
    match = params.keyword_hits(item) / len(params.keywords) if params.keywords else 1.0
    return match + ACCESS_WEIGHT * item.access_count


def rank_score(
    item: MemoryItem,
    params: SearchParams,
    now: int,
    w_recency: float = 0.4,
    w_importance: float = 0.4,
    w_relevance: float = 0.2,
) -> float:
    """score = 0.4 * recency + 0.4 * importance * recency + 0.2 * relevance"""
    r = recency(item, now)
    return (
        w_recency * r
        + w_importance * item.importance * r
        + w_relevance * relevance(item, params)
    )


def rank(items: list[MemoryItem], params: SearchParams, now: int) -> list[MemoryItem]:
    """Sort by score, breaking ties by importance and then recency."""
    return sorted(
        items,
        key=lambda item: (rank_score(item, params, now), item.importance, item.timestamp),
        reverse=True,
    )
