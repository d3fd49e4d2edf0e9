"""Sub-frame timing refinement of contact transitions.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

CROSSING_LEVEL = 0.5
EXACT_SAMPLE_TOLERANCE = 0.01


class RefinementMethod(str, Enum):
    """How to place an edge between frames."""

    MAX_DERIVATIVE = "max_derivative"
    LEVEL_CROSSING = "level_crossing"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class EdgeRefinement:
    """Refined time of one edge.

    Attributes:
        time_ms: Refined timestamp
        confidence: Timing confidence [0, 1]
        method: Method that produced the time
        offset_ms: Refined minus coarse timestamp
    """

    time_ms: float
    confidence: float
    method: RefinementMethod
    offset_ms: float


def _interpolate(
    scores: Sequence[float],
    timestamps_ms: Sequence[float],
    j: int,
    level: float,
) -> float | None:
    """Time where the segment j -> j+1 crosses ``level``, if it does."""
    a, b = scores[j], scores[j + 1]
    if a == b or not (min(a, b) <= level <= max(a, b)):
        return None
    fraction = (level - a) / (b - a)
    return timestamps_ms[j] + fraction * (timestamps_ms[j + 1] - timestamps_ms[j])


def refine_edge(
    scores: Sequence[float],
    timestamps_ms: Sequence[float],
    index: int,
    rising: bool,
    method: RefinementMethod = RefinementMethod.MAX_DERIVATIVE,
    window: int = 3,
    level: float = CROSSING_LEVEL,
) -> EdgeRefinement:
    """Refine the transition at frame ``index``.

    Args:
        scores: Smoothed contact scores in [0, 1]
        timestamps_ms: Frame timestamps, same length as scores
        index: Frame where the coarse state flipped
        rising: True for landings (0 -> 1), False for takeoffs
        method: Refinement method
        window: Search radius in frames around ``index``
        level: Crossing level

    Returns:
        EdgeRefinement; falls back to the coarse time with confidence 0
        when no usable edge is found
    """
    coarse = timestamps_ms[index]
    n = len(scores)
    lo = max(0, index - window)
    hi = min(n - 1, index + window)

    if method is RefinementMethod.NONE or hi <= lo:
        return EdgeRefinement(coarse, 0.0, method, 0.0)

    if method is RefinementMethod.MAX_DERIVATIVE:
        best_j = -1
        best_slope = 0.0
        for j in range(lo, hi):
            slope = scores[j + 1] - scores[j]
            if (rising and slope > best_slope) or (not rising and slope < best_slope):
                best_j, best_slope = j, slope
        if best_j < 0:
            return EdgeRefinement(coarse, 0.0, method, 0.0)

        refined = _interpolate(scores, timestamps_ms, best_j, level)
        if refined is None:
            refined = timestamps_ms[best_j + 1]
        confidence = min(1.0, 2.0 * abs(best_slope))
        return EdgeRefinement(refined, confidence, method, refined - coarse)

    for j in range(lo, hi):
        a, b = scores[j], scores[j + 1]
        crossed = (a < level <= b) if rising else (a >= level > b)
        if not crossed:
            continue
        refined = _interpolate(scores, timestamps_ms, j, level)
        if refined is None:
            refined = timestamps_ms[j + 1]
        nearest = min(abs(a - level), abs(b - level))
        confidence = 1.0 if nearest < EXACT_SAMPLE_TOLERANCE else max(0.0, 1.0 - nearest)
        return EdgeRefinement(refined, confidence, method, refined - coarse)

    return EdgeRefinement(coarse, 0.0, method, 0.0)
