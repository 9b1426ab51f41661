"""Conversation boundary detection."""

import re
from typing import Optional

from memflow.core.config import BoundaryConfig

GREETING_PATTERNS = (
    re.compile(r"\b(hi|hello|hey)\b", re.IGNORECASE),
    re.compile(r"\bhow are you\b", re.IGNORECASE),
    re.compile(r"\bnice to meet you\b", re.IGNORECASE),
    re.compile(r"\bgood (morning|afternoon|evening)\b", re.IGNORECASE),
)

RESTART_PATTERN = re.compile(
    r"\b(start over|new conversation|start fresh|let's start again)\b",
    re.IGNORECASE,
)


def is_greeting(utterance: str) -> bool:
    return any(pattern.search(utterance) for pattern in GREETING_PATTERNS)


def is_restart_request(utterance: str) -> bool:
    return RESTART_PATTERN.search(utterance) is not None


class BoundaryDetector:
    """Decides whether an utterance opens a new conversation.

    A new conversation starts when:
    - the short-term buffer is empty
    - the buffer has been idle longer than ``idle_timeout``
    - a greeting arrives while the buffer already holds more than
      ``greeting_min_items`` items
    - the subject explicitly asks to start over
    """

    def __init__(self, config: Optional[BoundaryConfig] = None):
        self.config = config or BoundaryConfig()

    def check(
        self,
        utterance: str,
        item_count: int,
        last_updated: Optional[int],
        now: int,
    ) -> Optional[str]:
        """Return the reason for a boundary, or None to stay in the conversation."""
        if item_count == 0:
            return "empty"

        if last_updated is not None and now - last_updated > self.config.idle_timeout * 1000:
            return "idle"

        if item_count > self.config.greeting_min_items and is_greeting(utterance):
            return "greeting"

        if self.config.detect_restart_phrases and is_restart_request(utterance):
            return "restart"

        return None
