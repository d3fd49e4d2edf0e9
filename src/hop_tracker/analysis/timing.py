"""Millisecond/second conversions.

Integer milliseconds are the source of truth; seconds are derived for display.
Negative and non-finite inputs clamp to zero.
"""

from __future__ import annotations

import math


def _valid(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value >= 0


def ms_to_seconds(ms: float | None) -> float:
    """Convert milliseconds to seconds."""
    if ms is None or not _valid(ms):
        return 0.0
    return ms / 1000.0


def seconds_to_ms(seconds: float | None) -> int:
    """Convert seconds to whole milliseconds."""
    if seconds is None or not _valid(seconds):
        return 0
    return int(round(seconds * 1000.0))


def frames_to_ms(frames: float, fps: float) -> float:
    """Duration of ``frames`` frames at ``fps`` frames per second."""
    if not _valid(frames) or not _valid(fps) or fps == 0:
        return 0.0
    return frames * 1000.0 / fps


def duration_ms(start_ms: float, end_ms: float) -> int:
    """Whole milliseconds from start to end, never negative."""
    if not (math.isfinite(start_ms) and math.isfinite(end_ms)):
        return 0
    return max(0, int(round(end_ms - start_ms)))
