"""Helpers shared by the progress aggregators."""

import math
from typing import Optional

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: Optional[float]) -> int:
    """
    Round half-up to an integer and clamp to [0, 100].

    None and NaN become 0.
    """
    if value is None or math.isnan(value):
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, math.floor(value + 0.5)))


def bound_score(value: float) -> float:
    """Clamp a session score to [0, 100]; NaN and infinities are refused."""
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"session score must be a finite number, got {value}")
    return max(float(MIN_SCORE), min(float(MAX_SCORE), value))


def union_ids(existing: list[str], new_id: Optional[str]) -> list[str]:
    """Append `new_id` to a copy of `existing` unless empty or already present."""
    merged = list(existing)
    if new_id and new_id not in merged:
        merged.append(new_id)
    return merged
