"""Importance derivation and significant-content heuristics.

Classifying text is someone else's job: the emotion, topic and problem tags
arrive with the write. This module only turns those signals plus a few
surface features of the utterance into an importance score.
"""

import re
from typing import Optional

from memflow.core.config import AdmissionConfig
from memflow.memory.base import MemoryContext

# Markers that force long-term admission regardless of importance
SIGNIFICANT_PATTERNS = (
    re.compile(r"\b(trauma|abuse|suicide|crisis|emergency|urgent)\b", re.IGNORECASE),
    re.compile(r"\b(never|always|first time|last time)\b", re.IGNORECASE),
    re.compile(r"\b(died|passed away|death|loss|grief)\b", re.IGNORECASE),
    re.compile(r"\b(important|significant|critical|key|vital)\b", re.IGNORECASE),
)


class ImportanceScorer:
    """Heuristic importance scoring, no model required.

    Starting from 0.5:
    - +0.1 for more than 50 words, another +0.1 beyond 100
    - +0.2 if any emotion is high-intensity, else +0.1 if any emotion is present
    - +0.2 if any problem tag is present
    - +0.02 per ``!`` or ``?``, capped at +0.1

    The result is clamped to [0.1, 1.0].
    """

    MIN_IMPORTANCE = 0.1
    MAX_IMPORTANCE = 1.0

    def __init__(self, config: Optional[AdmissionConfig] = None):
        self.config = config or AdmissionConfig()
        self._high_intensity = frozenset(e.lower() for e in self.config.high_intensity_emotions)

    def evaluate(self, content: str, context: Optional[MemoryContext] = None) -> float:
        context = context or MemoryContext()
        score = 0.5

        # Length
        words = len(content.split())
        if words > 50:
            score += 0.1
        if words > 100:
            score += 0.1

        # Emotional content
        if context.emotions:
            score += 0.2 if self.is_high_intensity(context) else 0.1

        # Problems
        if context.problems:
            score += 0.2

        # Intensity markers
        marks = content.count("!") + content.count("?")
        score += min(0.1, marks * 0.02)

        return min(self.MAX_IMPORTANCE, max(self.MIN_IMPORTANCE, score))

    def is_high_intensity(self, context: Optional[MemoryContext]) -> bool:
        if context is None:
            return False
        return any(e.lower() in self._high_intensity for e in context.emotions)

    def is_significant(self, content: str, context: Optional[MemoryContext] = None) -> bool:
        """Crisis, loss or milestone language, or any problem tag."""
        if context is not None and context.problems:
            return True
        return any(pattern.search(content) for pattern in SIGNIFICANT_PATTERNS)
