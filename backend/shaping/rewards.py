"""
Reward shaping for feedback events.

Maps a list of buffered entries and the reward bounds of a feedback event
to one reward per credited entry. Three modes:

- UNIFORM:  only the newest entry is credited, with the max bound.
- GRADIENT: every entry is credited, interpolated from min (oldest) to
            max (newest) along a t**p recency curve (p < 1 pushes most of
            the weight onto recent entries).
- NEUTRAL:  every entry gets 0. Used for intrinsic (timeout) feedback.

The functions here are pure; the dispatcher owns draining.
"""

import math
from enum import Enum
from typing import Sequence

import numpy as np

from .config import DEFAULT_GRADIENT_EXPONENT


class ShapingMode(str, Enum):
    UNIFORM = "uniform"
    GRADIENT = "gradient"
    NEUTRAL = "neutral"


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def gradient_rewards(
    count: int,
    min_value: float,
    max_value: float,
    exponent: float = DEFAULT_GRADIENT_EXPONENT,
) -> list[float]:
    """
    Recency-weighted rewards, oldest first.

    Args:
        count: Number of entries
        min_value: Reward of the oldest entry
        max_value: Reward of the newest entry
        exponent: Recency curve exponent (0 < p < 1)

    Returns:
        count rewards; [max_value] for a single entry, [] for none.
    """
    if count <= 0:
        return []
    if count == 1:
        return [float(max_value)]

    t = np.linspace(0.0, 1.0, count) ** exponent
    rewards = lerp(min_value, max_value, t)
    rewards[-1] = max_value  # exact, free of float error
    return [float(r) for r in rewards]


def shape(
    entries: Sequence,
    mode: ShapingMode,
    min_value: float,
    max_value: float,
    exponent: float = DEFAULT_GRADIENT_EXPONENT,
) -> list[float]:
    """
    Compute per-entry rewards for a feedback event.

    For UNIFORM the result has a single element that belongs to entries[-1];
    for the other modes it is aligned with entries.
    """
    if not entries:
        return []

    mode = ShapingMode(mode)
    if mode is ShapingMode.UNIFORM:
        return [float(max_value)]
    if mode is ShapingMode.NEUTRAL:
        return [0.0] * len(entries)
    return gradient_rewards(len(entries), min_value, max_value, exponent)


def decay_weight(age: float, half_life: float) -> float:
    """Monotone non-increasing credit weight for an action age (seconds)."""
    if half_life <= 0:
        raise ValueError(f"half_life must be positive, got {half_life}")
    return math.pow(0.5, max(0.0, age) / half_life)


def decayed_rewards(ages: Sequence[float], base_reward: float, half_life: float) -> list[float]:
    """base_reward scaled by decay_weight of each age."""
    return [base_reward * decay_weight(age, half_life) for age in ages]
