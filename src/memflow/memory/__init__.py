"""Tiered conversational memory.

Tiers:
1. Working memory (WorkingMemoryStore) - small, importance-evicted focus set
2. Short-term memory (ShortTermMemoryStore) - recent utterances, FIFO
3. Long-term memory (LongTermMemoryStore) - significant items, evicted by
   importance x retention
4. Patient profile (PatientProfileStore) - aggregate facts about the subject

MemoryController routes writes between the tiers, merges reads across them
and handles conversation boundaries, backups and recovery.
"""

from memflow.memory.base import (
    MemoryContext,
    MemoryItem,
    SearchParams,
    Speaker,
    Timeframe,
)
from memflow.memory.retention import memory_strength, retention
from memflow.memory.eviction import (
    EvictionPolicy,
    FifoEviction,
    ImportanceEviction,
    RetentionEviction,
)
from memflow.memory.tier import TierStore
from memflow.memory.working import WorkingMemoryStore
from memflow.memory.short_term import ShortTermMemoryStore
from memflow.memory.long_term import LongTermMemoryStore
from memflow.memory.profile import PatientProfile, PatientProfileStore
from memflow.memory.backup import BackupRecord, BackupRecoveryManager, BackupStatus
from memflow.memory.significance import ImportanceScorer
from memflow.memory.boundary import BoundaryDetector
from memflow.memory.scheduler import MaintenanceScheduler
from memflow.memory.controller import ConversationState, MemoryController

__all__ = [
    # Items
    "MemoryContext",
    "MemoryItem",
    "SearchParams",
    "Speaker",
    "Timeframe",

    # Retention and eviction
    "memory_strength",
    "retention",
    "EvictionPolicy",
    "FifoEviction",
    "ImportanceEviction",
    "RetentionEviction",

    # Tiers
    "TierStore",
    "WorkingMemoryStore",
    "ShortTermMemoryStore",
    "LongTermMemoryStore",
    "PatientProfile",
    "PatientProfileStore",

    # Backup
    "BackupRecord",
    "BackupRecoveryManager",
    "BackupStatus",

    # Controller
    "ImportanceScorer",
    "BoundaryDetector",
    "MaintenanceScheduler",
    "ConversationState",
    "MemoryController",
]
