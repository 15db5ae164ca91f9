"""Angle arithmetic for a single servo channel."""

from __future__ import annotations

import math

from arm_commander.constants import MAX_ANGLE_DEG, MIN_ANGLE_DEG


def clamp(value: float) -> int:
    """Round half up to whole degrees and limit to [0, 180]."""
    value = float(value)
    if not math.isfinite(value):
        # NaN maps to the lower bound
        return MAX_ANGLE_DEG if value > 0 else MIN_ANGLE_DEG
    rounded = math.floor(value + 0.5)
    return max(MIN_ANGLE_DEG, min(MAX_ANGLE_DEG, rounded))


def apply_delta(current: float, delta: float) -> int:
    return clamp(current + delta)
