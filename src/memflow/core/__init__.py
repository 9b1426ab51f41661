"""Core modules for memflow."""

from memflow.core.config import MemoryConfig, Settings, get_settings
from memflow.core.exceptions import (
    MemflowError,
    PersistenceError,
    MalformedSnapshotError,
    InvalidSearchParamsError,
)

__all__ = [
    "MemoryConfig",
    "Settings",
    "get_settings",
    "MemflowError",
    "PersistenceError",
    "MalformedSnapshotError",
    "InvalidSearchParamsError",
]
