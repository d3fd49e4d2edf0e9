"""Per-frame contact signal from motion energy inside the contact region."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import cv2
import numpy as np

from hop_tracker.core.config import ContactSignalSettings
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import ContactRegion, ContactSample, Frame
from hop_tracker.vision.filters import (
    THRESHOLD_EPS,
    NormalizationInfo,
    apply_hysteresis,
    ema_smooth,
    normalize_median_mad,
    normalize_percentile,
    zero_phase_ema,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SafeguardReport:
    """Checks that the smoothed signal can support a contact decision."""

    dynamic_range: float
    frames_above_enter: int
    frames_below_exit: int
    passed: bool


@dataclass(frozen=True, slots=True)
class ContactSignal:
    """Contact signal for a batch of frames.

    All per-frame sequences have one entry per input frame.
    """

    raw_scores: tuple[float, ...]
    normalized_scores: tuple[float, ...]
    smoothed_scores: tuple[float, ...]
    states: tuple[int, ...]
    timestamps_ms: tuple[float, ...]
    enter_threshold: float
    exit_threshold: float
    confidence: float
    chatter_count: int = 0
    smoothing_mode: str = "causal"
    normalization: NormalizationInfo | None = None
    safeguards: SafeguardReport | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def samples(self) -> tuple[ContactSample, ...]:
        """One ContactSample per frame."""
        return tuple(
            ContactSample(t, raw, smooth, state)
            for t, raw, smooth, state in zip(
                self.timestamps_ms, self.raw_scores, self.smoothed_scores, self.states
            )
        )


def raw_motion_scores(frames: Sequence[Frame], region: ContactRegion) -> list[float]:
    """Mean absolute difference from the previous frame inside the region.

    The first frame scores 0. The region is clipped to the frame.
    """
    if not frames:
        return []

    height, width = frames[0].height, frames[0].width
    x0 = max(0, region.x)
    y0 = max(0, region.y)
    x1 = min(width, region.x + region.width)
    y1 = min(height, region.y + region.height)
    if x1 <= x0 or y1 <= y0:
        return [0.0] * len(frames)

    scores = [0.0]
    for prev, curr in zip(frames[:-1], frames[1:]):
        diff = cv2.absdiff(curr.pixels[y0:y1, x0:x1], prev.pixels[y0:y1, x0:x1])
        scores.append(float(diff.mean()))
    return scores


class ContactSignalComputer:
    """Turns frames plus a contact region into a binary contact state."""

    def __init__(self, settings: ContactSignalSettings | None = None) -> None:
        """Initialize computer with settings.

        Args:
            settings: Signal parameters (uses defaults if None)
        """
        self.settings = settings or ContactSignalSettings()

    def compute(self, frames: Sequence[Frame], region: ContactRegion) -> ContactSignal:
        """Score, normalize, smooth, and threshold the region's motion.

        Args:
            frames: Grayscale frames of equal size
            region: Contact region from the locator

        Returns:
            ContactSignal; confidence is 0 when the safeguards fail
        """
        raw = raw_motion_scores(frames, region)
        timestamps = tuple(f.timestamp_ms for f in frames)
        return self.compute_from_scores(raw, timestamps)

    def compute_from_scores(
        self,
        raw: Sequence[float],
        timestamps_ms: Sequence[float],
    ) -> ContactSignal:
        """Run normalization, smoothing, and hysteresis on precomputed raw scores."""
        s = self.settings
        if s.norm_method == "percentile":
            normalized, norm_info = normalize_percentile(raw)
        else:
            normalized, norm_info = normalize_median_mad(raw)

        if s.smoothing_mode == "zero_phase":
            smoothed = zero_phase_ema(normalized, s.ema_alpha)
        else:
            smoothed = ema_smooth(normalized, s.ema_alpha)

        states, chatter = apply_hysteresis(
            smoothed, s.enter_threshold, s.exit_threshold, s.min_state_frames
        )
        safeguards = self._check_safeguards(smoothed)
        confidence = self._confidence(smoothed) if safeguards.passed else 0.0

        notes: list[str] = []
        if not safeguards.passed:
            notes.append(
                "Contact signal safeguards failed "
                f"(range={safeguards.dynamic_range:.3f}, "
                f"above={safeguards.frames_above_enter}, below={safeguards.frames_below_exit})"
            )
            logger.info(notes[-1])
        if chatter:
            logger.debug("Contact signal chatter: %d reverted flips", chatter)

        return ContactSignal(
            raw_scores=tuple(float(v) for v in raw),
            normalized_scores=tuple(normalized),
            smoothed_scores=tuple(smoothed),
            states=tuple(states),
            timestamps_ms=tuple(float(t) for t in timestamps_ms),
            enter_threshold=s.enter_threshold,
            exit_threshold=s.exit_threshold,
            confidence=confidence,
            chatter_count=chatter,
            smoothing_mode=s.smoothing_mode,
            normalization=norm_info,
            safeguards=safeguards,
            notes=tuple(notes),
        )

    def _check_safeguards(self, smoothed: Sequence[float]) -> SafeguardReport:
        s = self.settings
        if not smoothed:
            return SafeguardReport(0.0, 0, 0, passed=False)

        dynamic_range = max(smoothed) - min(smoothed)
        above = sum(1 for v in smoothed if v >= s.enter_threshold - THRESHOLD_EPS)
        below = sum(1 for v in smoothed if v <= s.exit_threshold + THRESHOLD_EPS)
        passed = (
            dynamic_range >= s.min_dynamic_range
            and above >= s.min_frames_above_enter
            and below >= s.min_frames_below_exit
        )
        return SafeguardReport(dynamic_range, above, below, passed)

    def _confidence(self, smoothed: Sequence[float]) -> float:
        s = self.settings
        gap = min(1.0, max(0.0, (s.enter_threshold - s.exit_threshold) / 0.3))
        spread = max(0.0, 1.0 - 2.0 * float(np.std(smoothed)))
        return 0.5 * gap + 0.5 * spread
