"""Forgetting-curve retention model.

Retention follows an exponential forgetting curve::

    R = e^(-t / S)
    S = 10 * importance * ln(access_count + 1.5)

where ``t`` is the item's age in hours. Important and frequently recalled
items get a larger strength ``S`` and therefore decay more slowly.
"""

import math


def memory_strength(importance: float, access_count: int = 1) -> float:
    """Memory strength ``S``. ``access_count`` below 1 counts as 1."""
    return 10.0 * max(0.0, importance) * math.log(max(1, access_count) + 1.5)


def retention(age_hours: float, importance: float = 0.5, access_count: int = 1) -> float:
    """Current retention of an item, in [0, 1].

    Pure and total: negative ages count as zero, and zero importance decays
    to 0 as soon as any time has passed.
    """
    age = max(0.0, age_hours)
    strength = memory_strength(importance, access_count)

    if strength <= 0.0:
        return 1.0 if age == 0.0 else 0.0

    return max(0.0, min(1.0, math.exp(-age / strength)))
