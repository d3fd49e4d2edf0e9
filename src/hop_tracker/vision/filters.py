"""Signal filtering utilities for contact scores.

Batch functions are pure and operate on whole score series. The stateful
classes mirror them one sample at a time for streaming callers.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from hop_tracker.core.logging import get_logger

logger = get_logger(__name__)

# Absorbs float rounding when a score sits exactly on the enter threshold
THRESHOLD_EPS = 1e-6
MIN_SCALE = 1e-3
MAD_TO_SIGMA = 1.48


@dataclass(frozen=True, slots=True)
class NormalizationInfo:
    """Parameters used to map raw scores onto [0, 1].

    Attributes:
        method: "median_mad" or "percentile"
        center: Median (median_mad) or 5th percentile (percentile)
        scale: 1.48*MAD (median_mad) or the 5th..95th percentile range
    """

    method: str
    center: float
    scale: float


def _clip01(value: float) -> float:
    return min(1.0, max(0.0, value))


def normalize_median_mad(values: Sequence[float]) -> tuple[list[float], NormalizationInfo]:
    """Robust normalization centred on the median.

    Args:
        values: Raw scores

    Returns:
        Scores mapped to clip(0.5 + (x - median) / (2 * 1.48 * MAD)) and the
        parameters used
    """
    if not values:
        return [], NormalizationInfo("median_mad", 0.0, MIN_SCALE)

    arr = np.asarray(values, dtype=np.float64)
    median = float(np.median(arr))
    mad = float(np.median(np.abs(arr - median)))
    scale = max(MAD_TO_SIGMA * mad, MIN_SCALE)

    normalized = [_clip01(0.5 + 0.5 * (float(v) - median) / scale) for v in arr]
    return normalized, NormalizationInfo("median_mad", median, scale)


def normalize_percentile(values: Sequence[float]) -> tuple[list[float], NormalizationInfo]:
    """Linear map of the 5th..95th percentile range onto [0, 1].

    Percentiles use nearest rank on the sorted series.
    """
    if not values:
        return [], NormalizationInfo("percentile", 0.0, MIN_SCALE)

    ordered = sorted(float(v) for v in values)
    n = len(ordered)
    p5 = ordered[int(math.floor(n * 0.05))]
    p95 = ordered[min(n - 1, int(math.floor(n * 0.95)))]
    span = max(p95 - p5, MIN_SCALE)

    normalized = [_clip01((float(v) - p5) / span) for v in values]
    return normalized, NormalizationInfo("percentile", p5, span)


def ema_smooth(values: Sequence[float], alpha: float) -> list[float]:
    """Causal exponential moving average seeded with the first value."""
    smoothed: list[float] = []
    for value in values:
        if not smoothed:
            smoothed.append(float(value))
        else:
            smoothed.append(alpha * float(value) + (1.0 - alpha) * smoothed[-1])
    return smoothed


def zero_phase_ema(values: Sequence[float], alpha: float) -> list[float]:
    """Forward-backward EMA; removes the causal filter's lag."""
    forward = ema_smooth(values, alpha)
    backward = ema_smooth(forward[::-1], alpha)
    return backward[::-1]


def _crosses(state: int, score: float, enter: float, exit_: float) -> bool:
    """Whether ``score`` argues for leaving ``state``."""
    if state == 0:
        return score >= enter - THRESHOLD_EPS
    return score < exit_


def apply_hysteresis(
    scores: Sequence[float],
    enter: float,
    exit_: float,
    min_state_frames: int = 1,
) -> tuple[list[int], int]:
    """Binarize scores with two thresholds and a minimum dwell.

    A flip is committed only if the new side holds for ``min_state_frames``
    consecutive frames; it then takes effect from the frame where it began.
    Shorter excursions are reverted and counted as chatter. A flip still
    pending when the series ends is dropped without counting.

    Args:
        scores: Smoothed scores in [0, 1]
        enter: Threshold to enter contact (score >= enter)
        exit_: Threshold to leave contact (score < exit_)
        min_state_frames: Dwell required to commit a flip

    Returns:
        Tuple of (per-frame states, chatter count)
    """
    n = len(scores)
    states = [0] * n
    chatter = 0
    current = 0

    i = 0
    while i < n:
        if _crosses(current, scores[i], enter, exit_):
            candidate = 1 - current
            run = 1
            while (
                run < min_state_frames
                and i + run < n
                and not _crosses(candidate, scores[i + run], enter, exit_)
            ):
                run += 1

            if run >= min_state_frames:
                current = candidate
            elif i + run < n:
                # Reverted excursion: keep the old state and resume after it
                chatter += 1
                states[i : i + run] = [current] * run
                i += run
                continue
        states[i] = current
        i += 1

    return states, chatter


class ExponentialSmoother:
    """Streaming EMA, one sample at a time."""

    def __init__(self, alpha: float = 0.2) -> None:
        """Initialize smoother.

        Args:
            alpha: Weight of the newest sample (0, 1]
        """
        self.alpha = alpha
        self._value: float | None = None

    @property
    def value(self) -> float | None:
        """Current smoothed value, None before the first update."""
        return self._value

    def reset(self) -> None:
        """Forget smoothing history."""
        self._value = None

    def update(self, value: float) -> float:
        """Add a sample and return the smoothed value."""
        if self._value is None:
            self._value = float(value)
        else:
            self._value = self.alpha * float(value) + (1.0 - self.alpha) * self._value
        return self._value


class HysteresisGate:
    """Streaming two-threshold contact state with a minimum dwell.

    Unlike ``apply_hysteresis``, a streaming caller cannot rewrite the past,
    so a flip is reported on the frame where its dwell completes.
    """

    def __init__(self, enter: float, exit_: float, min_state_frames: int = 1) -> None:
        self.enter = enter
        self.exit = exit_
        self.min_state_frames = max(1, min_state_frames)
        self._state = 0
        self._pending = 0
        self.chatter_count = 0

    @property
    def state(self) -> int:
        """Committed contact state (0 = flight, 1 = contact)."""
        return self._state

    def reset(self) -> None:
        """Return to flight with no pending flip."""
        self._state = 0
        self._pending = 0
        self.chatter_count = 0

    def update(self, score: float) -> int:
        """Feed one smoothed score and return the committed state."""
        if self._pending == 0:
            if _crosses(self._state, score, self.enter, self.exit):
                self._pending = 1
        elif not _crosses(1 - self._state, score, self.enter, self.exit):
            self._pending += 1
        else:
            self.chatter_count += 1
            self._pending = 0
            logger.debug("Reverted contact flip after short excursion")

        if self._pending >= self.min_state_frames:
            self._state = 1 - self._state
            self._pending = 0

        return self._state
