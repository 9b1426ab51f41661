"""Memory data model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from memflow.core.exceptions import InvalidSearchParamsError
from memflow.memory.retention import retention

Clock = Callable[[], int]

MS_PER_HOUR = 3_600_000


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class Speaker(str, Enum):
    """Who produced an utterance."""
    SUBJECT = "subject"  # the person being supported
    SYSTEM = "system"    # the assistant


class MemoryContext(BaseModel):
    """Signals accompanying a write.

    Supplied by an external classifier and only used to derive importance
    and tags when the item is admitted.
    """

    emotions: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)


class MemoryItem(BaseModel):
    """A single remembered utterance.

    ``id``, ``content``, ``timestamp`` and ``speaker`` are frozen. Tags can
    only grow and ``importance`` only changes through re-derivation.
    Retention is never stored; it is computed from age, importance and
    access count whenever it is read.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid4().hex, frozen=True)
    content: str = Field(frozen=True)
    timestamp: int = Field(default_factory=now_ms, frozen=True)  # epoch ms
    speaker: Speaker = Field(default=Speaker.SUBJECT, frozen=True)

    importance: float = Field(default=0.5, ge=0.0, le=1.0)

    topics: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)

    # Number of times this item was returned by a search
    access_count: int = Field(default=0, ge=0)
    last_accessed: Optional[int] = None

    def age_hours(self, now: Optional[int] = None) -> float:
        now = now_ms() if now is None else now
        return max(0, now - self.timestamp) / MS_PER_HOUR

    def retention_at(self, now: Optional[int] = None) -> float:
        """Current retention, derived from age, importance and accesses."""
        return retention(self.age_hours(now), self.importance, max(1, self.access_count))

    def touch(self, now: Optional[int] = None) -> None:
        """Record one retrieval."""
        self.access_count += 1
        self.last_accessed = now_ms() if now is None else now

    def add_tags(
        self,
        topics: Iterable[str] = (),
        emotions: Iterable[str] = (),
        problems: Iterable[str] = (),
    ) -> None:
        """Merge new tags into the item. Existing tags are never removed."""
        self.topics = _merge(self.topics, topics)
        self.emotions = _merge(self.emotions, emotions)
        self.problems = _merge(self.problems, problems)

    def rederive_importance(self, importance: float) -> None:
        self.importance = min(1.0, max(0.0, importance))

    @classmethod
    def from_context(
        cls,
        content: str,
        speaker: Speaker,
        importance: float,
        context: Optional[MemoryContext] = None,
        timestamp: Optional[int] = None,
    ) -> "MemoryItem":
        context = context or MemoryContext()
        data: dict[str, Any] = {
            "content": content,
            "speaker": speaker,
            "importance": importance,
            "topics": _merge([], context.topics),
            "emotions": _merge([], context.emotions),
            "problems": _merge([], context.problems),
        }
        if timestamp is not None:
            data["timestamp"] = timestamp
        return cls(**data)


class Timeframe(BaseModel):
    """Inclusive time window in epoch milliseconds."""

    start: Optional[int] = None
    end: Optional[int] = None

    @model_validator(mode="after")
    def _check_order(self) -> "Timeframe":
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("timeframe start must not be after end")
        return self

    def contains(self, timestamp: int) -> bool:
        if self.start is not None and timestamp < self.start:
            return False
        if self.end is not None and timestamp > self.end:
            return False
        return True


class SearchParams(BaseModel):
    """Search filters shared by every tier.

    Keyword, topic and emotion filters match when *any* requested value
    matches. ``limit=None`` means unlimited.
    """

    keywords: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    speaker: Optional[Speaker] = None
    timeframe: Optional[Timeframe] = None
    limit: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def parse(cls, params: Any = None, **kwargs: Any) -> "SearchParams":
        """Coerce a SearchParams, a dict or keyword arguments.

        Raises:
            InvalidSearchParamsError: if validation fails.
        """
        if isinstance(params, SearchParams) and not kwargs:
            return params

        data: dict[str, Any] = {}
        if isinstance(params, SearchParams):
            data.update(params.model_dump(exclude_unset=True))
        elif isinstance(params, dict):
            data.update(params)
        elif params is not None:
            raise InvalidSearchParamsError(
                f"Unsupported search params type: {type(params).__name__}"
            )
        data.update(kwargs)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidSearchParamsError(str(e)) from e

    def keyword_hits(self, item: MemoryItem) -> int:
        content = item.content.lower()
        return sum(1 for keyword in self.keywords if keyword.lower() in content)

    def topic_hits(self, item: MemoryItem) -> int:
        return sum(1 for topic in self.topics if topic in item.topics)

    def matches(self, item: MemoryItem) -> bool:
        if self.speaker is not None and item.speaker != self.speaker:
            return False
        if self.timeframe is not None and not self.timeframe.contains(item.timestamp):
            return False
        if self.keywords and self.keyword_hits(item) == 0:
            return False
        if self.topics and self.topic_hits(item) == 0:
            return False
        if self.emotions and not any(e in item.emotions for e in self.emotions):
            return False
        return True


def _merge(existing: list[str], new: Iterable[str]) -> list[str]:
    merged = list(existing)
    for tag in new:
        if tag not in merged:
            merged.append(tag)
    return merged
