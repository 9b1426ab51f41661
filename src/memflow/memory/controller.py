"""Memory controller: the per-session façade over all tiers."""

import asyncio
from enum import Enum
from typing import Any, Optional, Union

import structlog

from memflow.core.config import MemoryConfig, Settings, load_config
from memflow.core.exceptions import MalformedSnapshotError
from memflow.memory.backup import BackupRecoveryManager
from memflow.memory.base import (
    Clock,
    MemoryContext,
    MemoryItem,
    SearchParams,
    Speaker,
    now_ms,
)
from memflow.memory.boundary import BoundaryDetector
from memflow.memory.long_term import LongTermMemoryStore
from memflow.memory.profile import PatientProfile, PatientProfileStore
from memflow.memory.ranking import deduplicate, rank
from memflow.memory.scheduler import MaintenanceScheduler
from memflow.memory.short_term import ShortTermMemoryStore
from memflow.memory.significance import ImportanceScorer
from memflow.memory.tier import TierStore
from memflow.memory.working import WorkingMemoryStore
from memflow.storage import create_store
from memflow.storage.base import KeyValueStore
from memflow.storage.memory import InMemoryKeyValueStore
from memflow.storage.writer import BackgroundWriter

logger = structlog.get_logger()


class ConversationState(str, Enum):
    """Conversation boundary state."""
    ACTIVE = "active"
    RESET_PENDING = "reset_pending"


class MemoryController:
    """Routes memories between tiers for one conversational session.

    Construct one controller per session and pass it to whatever needs
    memory. There is no module-level state.

    Writes:
    - every item goes to short-term memory
    - important or emotionally intense items also go to working memory
    - very important or significant items also go to long-term memory
    - the subject's own utterances update the patient profile

    Reads merge the three item tiers, deduplicate by content and rank by
    recency and importance.

    Only invalid search parameters are raised to the caller. Persistence,
    pruning and backup failures are logged and absorbed.

    Example:
        ```python
        async with MemoryController() as memory:
            await memory.initialize()

            if memory.is_new_conversation("hello"):
                await memory.reset_memory()

            await memory.add_memory(
                "I've been so anxious since the accident",
                speaker=Speaker.SUBJECT,
                context=MemoryContext(emotions=["anxious"], topics=["accident"]),
            )

            results = await memory.search(keywords=["accident"], limit=5)
        ```
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        storage: Optional[KeyValueStore] = None,
        *,
        clock: Optional[Clock] = None,
        scorer: Optional[ImportanceScorer] = None,
    ):
        """Initialize the controller.

        Args:
            config: Memory configuration. Uses defaults if not provided.
            storage: Key-value store for checkpoints, backups and the
                profile. An in-memory store is used if not provided.
            clock: Callable returning the current time in epoch ms.
            scorer: Importance scorer. Built from ``config.admission``
                if not provided.
        """
        self.config = config or MemoryConfig()
        self.storage = storage if storage is not None else InMemoryKeyValueStore()
        self._clock = clock or now_ms
        self._owns_storage = False

        self.writer = BackgroundWriter(self.config.persistence)

        self.working = WorkingMemoryStore(self.config.working, clock=self._clock)
        self.short_term = ShortTermMemoryStore(
            self.config.short_term,
            clock=self._clock,
            storage=self.storage,
            writer=self.writer,
        )
        self.long_term = LongTermMemoryStore(
            self.config.long_term,
            clock=self._clock,
            storage=self.storage,
            writer=self.writer,
        )
        self.profile = PatientProfileStore(
            self.config.profile,
            clock=self._clock,
            storage=self.storage,
            writer=self.writer,
        )
        self.backup = BackupRecoveryManager(
            self.config.backup,
            storage=self.storage,
            clock=self._clock,
        )

        self.scorer = scorer or ImportanceScorer(self.config.admission)
        self.boundary = BoundaryDetector(self.config.boundary)
        self.scheduler = MaintenanceScheduler(
            self.long_term.refresh_retention,
            interval=self.config.long_term.maintenance_interval,
            name="long_term_retention",
        )

        self.state = ConversationState.ACTIVE
        self.last_boundary_reason: Optional[str] = None
        self.last_backup: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MemoryController":
        """Build a controller from environment settings."""
        controller = cls(
            config=load_config(settings),
            storage=create_store(settings=settings),
        )
        controller._owns_storage = True
        return controller

    @property
    def tiers(self) -> tuple[TierStore, ...]:
        return (self.working, self.short_term, self.long_term)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> dict[str, bool]:
        """Load persisted state.

        Working memory has no checkpoint of its own and comes back from its
        latest periodic backup. A corrupt tier checkpoint falls back to the
        latest backup. If no backup is usable either, the tier starts empty.
        Returns which components were restored.
        """
        loaded = {
            "backup": await self._safe_load("backup", self.backup.load),
            "patient_profile": await self._safe_load("patient_profile", self.profile.load),
        }

        items = await self.backup.restore(self.working.name)
        if items is not None:
            await self.working.replace(items)
        loaded[self.working.name] = items is not None

        for tier in (self.short_term, self.long_term):
            try:
                loaded[tier.name] = await tier.load()
            except MalformedSnapshotError as e:
                logger.error("Tier checkpoint malformed", tier=tier.name, error=str(e))
                loaded[tier.name] = await self._recover(tier)
            except Exception as e:
                logger.error("Tier checkpoint unreadable", tier=tier.name, error=str(e))
                loaded[tier.name] = False

        logger.info("Memory initialized", **loaded)
        return loaded

    async def start(self) -> None:
        """Start periodic long-term maintenance."""
        await self.scheduler.start()

    async def flush(self) -> None:
        """Wait for queued persistence and backup jobs."""
        await self.writer.drain()

    async def close(self) -> None:
        """Stop maintenance, flush pending writes and release storage."""
        await self.scheduler.stop()
        await self.writer.close()
        if self._owns_storage:
            await self.storage.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def add_memory(
        self,
        content: str,
        speaker: Union[Speaker, str] = Speaker.SUBJECT,
        context: Optional[Union[MemoryContext, dict[str, Any]]] = None,
        importance_override: Optional[float] = None,
    ) -> Optional[MemoryItem]:
        """Record an utterance in every tier whose admission rules it meets.

        Returns the created item, or None if the write failed internally.
        """
        try:
            if isinstance(context, dict):
                context = MemoryContext.model_validate(context)
            context = context or MemoryContext()
            speaker = Speaker(speaker)

            if importance_override is not None:
                importance = min(1.0, max(0.0, float(importance_override)))
            else:
                importance = self.scorer.evaluate(content, context)

            now = self._clock()
            item = MemoryItem.from_context(content, speaker, importance, context, timestamp=now)
            admission = self.config.admission

            targets: list[TierStore] = [self.short_term]
            if importance >= admission.working_threshold or self.scorer.is_high_intensity(context):
                targets.append(self.working)
            if importance >= admission.long_term_threshold or self.scorer.is_significant(content, context):
                targets.append(self.long_term)

            # Each tier owns its own copy
            writes = [tier.add(item.model_copy(deep=True)) for tier in targets]

            if speaker is Speaker.SUBJECT:
                if context.topics:
                    writes.append(self.profile.record_topics(context.topics))
                if context.emotions:
                    writes.append(self.profile.record_emotions(context.emotions))
                if importance >= admission.significant_event_threshold:
                    writes.append(self.profile.add_significant_event(item))

            results = await asyncio.gather(*writes, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Tier write failed", item_id=item.id, error=str(result))

            self._maybe_backup(now)

            logger.info(
                "Memory added",
                item_id=item.id,
                speaker=speaker.value,
                importance=round(importance, 3),
                tiers=[tier.name for tier in targets],
            )
            return item

        except Exception as e:
            logger.error("Failed to add memory", error=str(e))
            return None

    async def search(self, params: Any = None, **kwargs: Any) -> list[MemoryItem]:
        """Search all item tiers and return deduplicated, ranked results.

        Raises:
            InvalidSearchParamsError: if the parameters are invalid.
        """
        params = SearchParams.parse(params, **kwargs)

        try:
            # Candidates are ranked across tiers, so each tier returns all matches
            tier_params = params.model_copy(update={"limit": None})

            combined: list[MemoryItem] = []
            for tier in self.tiers:
                try:
                    combined.extend(tier.find(tier_params))
                except Exception as e:
                    logger.error("Tier search failed", tier=tier.name, error=str(e))

            ranked = rank(deduplicate(combined), params, self._clock())
            if params.limit is not None:
                ranked = ranked[:params.limit]

            if ranked:
                await self._record_access(ranked)

            logger.debug("Memory searched", candidates=len(combined), returned=len(ranked))
            return ranked

        except Exception as e:
            logger.error("Memory search failed", error=str(e))
            return []

    def is_new_conversation(self, utterance: str) -> bool:
        """Whether ``utterance`` starts a new conversation.

        A True result moves the controller to RESET_PENDING; the caller is
        expected to follow up with ``reset_memory``.
        """
        reason = self.boundary.check(
            utterance,
            item_count=len(self.short_term),
            last_updated=self.short_term.last_updated,
            now=self._clock(),
        )
        if reason is None:
            return False

        self.state = ConversationState.RESET_PENDING
        self.last_boundary_reason = reason
        logger.info("New conversation detected", reason=reason)
        return True

    async def reset_memory(self) -> None:
        """Back up and clear working and short-term memory.

        Long-term memory and the patient profile are never cleared here.
        """
        try:
            await asyncio.gather(
                self.backup.snapshot(f"{self.working.name}_pre_reset", self.working.get_all()),
                self.backup.snapshot(f"{self.short_term.name}_pre_reset", self.short_term.get_all()),
            )
            await asyncio.gather(self.working.clear(), self.short_term.clear())
            logger.info("Memory reset for new conversation")
        except Exception as e:
            logger.error("Memory reset failed", error=str(e))
        finally:
            self.state = ConversationState.ACTIVE

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Health summary per tier."""
        long_term = self.long_term.status()
        long_term["last_refreshed"] = self.long_term.last_refreshed

        return {
            "working": self.working.status(),
            "short_term": self.short_term.status(),
            "long_term": long_term,
            "patient_profile": self.profile.status(),
            "backup": self.backup.status(),
            "engine": {
                "state": self.state.value,
                "last_backup": self.last_backup,
                "pending_writes": self.writer.pending,
                "dead_letters": len(self.writer.dead_letters),
                "maintenance_runs": self.scheduler.runs,
            },
        }

    def get_patient_profile(self) -> PatientProfile:
        """A copy of the patient profile."""
        return self.profile.get_profile()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _maybe_backup(self, now: int) -> None:
        interval_ms = self.config.backup.interval * 1000
        if self.last_backup is not None and now - self.last_backup <= interval_ms:
            return

        self.last_backup = now
        for tier in (self.short_term, self.working, self.long_term):
            items = tier.get_all()
            name = tier.name
            self.writer.submit(
                f"backup:{name}",
                lambda name=name, items=items: self.backup.snapshot(name, items),
            )

    async def _record_access(self, items: list[MemoryItem]) -> None:
        """Bump access counts of the returned items in every tier holding them."""
        ids = [item.id for item in items]
        results = await asyncio.gather(
            *(tier.record_access(ids) for tier in self.tiers),
            return_exceptions=True,
        )
        for tier, result in zip(self.tiers, results):
            if isinstance(result, Exception):
                logger.error("Recording access failed", tier=tier.name, error=str(result))

        now = self._clock()
        for item in items:
            item.touch(now)

    async def _recover(self, tier: TierStore) -> bool:
        items = await self.backup.restore(tier.name)
        if items is None:
            await tier.replace([])
            logger.warning("Tier reset to empty", tier=tier.name)
            return False

        await tier.replace(items)
        logger.info("Tier recovered from backup", tier=tier.name, count=len(items))
        return True

    async def _safe_load(self, name: str, loader) -> bool:
        try:
            return await loader()
        except Exception as e:
            logger.error("Failed to load persisted state", component=name, error=str(e))
            return False
