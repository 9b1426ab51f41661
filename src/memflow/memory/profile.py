"""Persistent patient profile."""

import asyncio
from typing import Any, Iterable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from memflow.core.config import ProfileConfig
from memflow.core.exceptions import MalformedSnapshotError
from memflow.memory.base import Clock, MemoryItem, now_ms
from memflow.storage.base import KeyValueStore
from memflow.storage.codec import decode_payload, encode_payload
from memflow.storage.writer import BackgroundWriter

logger = structlog.get_logger()

PROFILE_KEY = "profile"


class PatientProfile(BaseModel):
    """Cross-session aggregate about one end user."""

    topic_counts: dict[str, int] = Field(default_factory=dict)
    emotion_counts: dict[str, int] = Field(default_factory=dict)
    personality_traits: dict[str, float] = Field(default_factory=dict)
    preferences: dict[str, Any] = Field(default_factory=dict)

    # Newest first
    significant_events: list[MemoryItem] = Field(default_factory=list)

    created_at: int = Field(default_factory=now_ms)
    last_updated: int = Field(default_factory=now_ms)


def _top(counts: dict[str, Any], n: int) -> list[str]:
    # Ties keep first-seen order
    return [key for key, _ in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:n]]


class PatientProfileStore:
    """Frequency counters, notable events and preferences for one user.

    Nothing here decays: counters only grow. A conversation reset never
    touches the profile. Every mutation queues a persistence write; a
    failed write is logged and otherwise ignored.

    Example:
        ```python
        profile = PatientProfileStore(storage=store)

        await profile.record_topics(["work", "sleep"])
        await profile.record_emotions(["anxious"])

        profile.get_top_topics(3)  # ["work", "sleep"]
        ```
    """

    def __init__(
        self,
        config: Optional[ProfileConfig] = None,
        *,
        clock: Optional[Clock] = None,
        storage: Optional[KeyValueStore] = None,
        writer: Optional[BackgroundWriter] = None,
    ):
        self.config = config or ProfileConfig()
        self._clock = clock or now_ms
        self._storage = storage
        self._writer = writer or (BackgroundWriter() if storage is not None else None)

        now = self._clock()
        self._profile = PatientProfile(created_at=now, last_updated=now)
        self._lock = asyncio.Lock()

    async def record_topics(self, topics: Iterable[str]) -> None:
        async with self._lock:
            for topic in topics:
                self._profile.topic_counts[topic] = self._profile.topic_counts.get(topic, 0) + 1
            self._touch_locked()

    async def record_emotions(self, emotions: Iterable[str]) -> None:
        async with self._lock:
            for emotion in emotions:
                self._profile.emotion_counts[emotion] = self._profile.emotion_counts.get(emotion, 0) + 1
            self._touch_locked()

    async def record_trait(self, trait: str, weight: float = 1.0) -> None:
        async with self._lock:
            traits = self._profile.personality_traits
            traits[trait] = traits.get(trait, 0.0) + weight
            self._touch_locked()

    async def add_significant_event(self, item: MemoryItem) -> None:
        """Prepend an event; the oldest one is dropped once full."""
        async with self._lock:
            events = self._profile.significant_events
            events.insert(0, item.model_copy(deep=True))
            del events[self.config.max_significant_events:]
            self._touch_locked()

    async def set_preference(self, key: str, value: Any) -> None:
        async with self._lock:
            self._profile.preferences[key] = value
            self._touch_locked()

    def get_top_topics(self, n: int = 3) -> list[str]:
        return _top(self._profile.topic_counts, n)

    def get_dominant_emotions(self, n: int = 3) -> list[str]:
        return _top(self._profile.emotion_counts, n)

    def get_profile(self) -> PatientProfile:
        """A deep copy of the profile."""
        return self._profile.model_copy(deep=True)

    def status(self) -> dict[str, Any]:
        return {
            "item_count": len(self._profile.significant_events),
            "last_updated": self._profile.last_updated,
            "topics_count": len(self._profile.topic_counts),
            "emotions_count": len(self._profile.emotion_counts),
            "significant_events_count": len(self._profile.significant_events),
        }

    async def clear(self) -> None:
        """Start a fresh profile. Never called by a conversation reset."""
        async with self._lock:
            now = self._clock()
            self._profile = PatientProfile(created_at=now, last_updated=now)
            self._persist_locked()

        logger.info("Patient profile cleared")

    async def load(self) -> bool:
        """Restore the profile from storage.

        Raises:
            MalformedSnapshotError: the stored profile is corrupt.
            PersistenceError: the store could not be read.
        """
        if self._storage is None:
            return False

        raw = await self._storage.get(PROFILE_KEY)
        if raw is None:
            return False

        data = decode_payload(raw, kind=PROFILE_KEY)
        try:
            profile = PatientProfile.model_validate(data)
        except ValidationError as e:
            raise MalformedSnapshotError(f"Invalid patient profile: {e}") from e

        async with self._lock:
            self._profile = profile

        logger.info(
            "Patient profile loaded",
            topics=len(profile.topic_counts),
            events=len(profile.significant_events),
        )
        return True

    async def flush(self) -> None:
        if self._writer is not None:
            await self._writer.drain()

    def _touch_locked(self) -> None:
        self._profile.last_updated = self._clock()
        self._persist_locked()

    def _persist_locked(self) -> None:
        if self._storage is None or self._writer is None:
            return

        payload = encode_payload(
            PROFILE_KEY,
            self._profile.model_dump(mode="json"),
            saved_at=self._profile.last_updated,
        )
        storage = self._storage
        self._writer.submit(PROFILE_KEY, lambda: storage.set(PROFILE_KEY, payload))
