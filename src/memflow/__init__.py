"""
memflow - Tiered conversational memory for long-running agent sessions.

This package provides:
- Working, short-term and long-term memory tiers with their own eviction rules
- Forgetting-curve retention for long-term items
- A patient profile aggregated from the subject's own utterances
- Conversation boundary detection with backup and recovery
- Pluggable async key-value persistence (in-memory, SQLite)
"""

from memflow.core.config import MemoryConfig, Settings
from memflow.core.exceptions import (
    MemflowError,
    PersistenceError,
    MalformedSnapshotError,
    InvalidSearchParamsError,
)
from memflow.core.logging import configure_logging
from memflow.memory.base import MemoryContext, MemoryItem, SearchParams, Speaker, Timeframe
from memflow.memory.controller import ConversationState, MemoryController
from memflow.memory.profile import PatientProfile
from memflow.storage import create_store

__version__ = "0.1.0"
__all__ = [
    # Core
    "MemoryConfig",
    "Settings",
    "configure_logging",
    # Errors
    "MemflowError",
    "PersistenceError",
    "MalformedSnapshotError",
    "InvalidSearchParamsError",
    # Memory
    "MemoryContext",
    "MemoryItem",
    "SearchParams",
    "Speaker",
    "Timeframe",
    "PatientProfile",
    "ConversationState",
    "MemoryController",
    # Storage
    "create_store",
]
