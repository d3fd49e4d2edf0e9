"""Summary statistics for hop timings and evaluation errors.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class HopSummary:
    """Aggregate timing over accepted hops."""

    hop_count: int = 0
    median_gct_ms: float | None = None
    p95_gct_ms: float | None = None
    median_flight_ms: float | None = None
    p95_flight_ms: float | None = None


@dataclass(frozen=True, slots=True)
class ErrorMetrics:
    """Distribution of absolute timing errors in milliseconds."""

    count: int = 0
    median: float | None = None
    p95: float | None = None
    min: float | None = None
    max: float | None = None
    mean: float | None = None


def median(values: Sequence[float]) -> float | None:
    """Median, averaging the two middle values for even counts.

    Returns:
        Median or None if empty
    """
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def compute_percentile(values: Sequence[float], percentile: float) -> float | None:
    """Nearest-rank percentile.

    Args:
        values: Sample values
        percentile: Percentile to compute (0-100)

    Returns:
        Percentile value or None if empty list
    """
    if not values:
        return None

    ordered = sorted(values)
    rank = math.ceil(percentile / 100.0 * len(ordered))
    idx = min(len(ordered) - 1, max(0, rank - 1))
    return float(ordered[idx])


def percentile_95(values: Sequence[float]) -> float | None:
    """95th percentile; None with fewer than two values."""
    if len(values) < 2:
        return None
    return compute_percentile(values, 95)


def summarize_hops(gct_ms: Sequence[float], flight_ms: Sequence[float]) -> HopSummary:
    """Median and 95th percentile of contact and flight times.

    Args:
        gct_ms: Ground contact times of accepted hops
        flight_ms: Flight times of accepted hops that have one
    """
    return HopSummary(
        hop_count=len(gct_ms),
        median_gct_ms=median(gct_ms),
        p95_gct_ms=percentile_95(gct_ms),
        median_flight_ms=median(flight_ms),
        p95_flight_ms=percentile_95(flight_ms),
    )


def compute_error_metrics(errors: Sequence[float]) -> ErrorMetrics:
    """Summarize absolute errors (signs are dropped)."""
    if not errors:
        return ErrorMetrics()
    magnitudes = [abs(e) for e in errors]
    return ErrorMetrics(
        count=len(magnitudes),
        median=median(magnitudes),
        p95=compute_percentile(magnitudes, 95),
        min=min(magnitudes),
        max=max(magnitudes),
        mean=sum(magnitudes) / len(magnitudes),
    )
