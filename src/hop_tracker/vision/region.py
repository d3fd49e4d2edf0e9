"""Contact region localization above the ground line.

Scans a horizontal band just above the ground for the rectangle whose motion
energy looks most like repeated foot strikes: sharp onsets, a regular cadence,
concentrated energy near the line, and little correlation with the body above.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray

from hop_tracker.core.config import ContactRegionSettings
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import ContactRegion, Frame, GroundModel

logger = get_logger(__name__)

EPS = 1e-6

LOW_SHARPNESS = "LOW_SHARPNESS"
LOW_CADENCE = "LOW_CADENCE"
LOW_CONCENTRATION = "LOW_CONCENTRATION"
HIGH_BODY_CORR = "HIGH_BODY_CORR"
LOW_CONFIDENCE = "LOW_CONFIDENCE"
NO_GROUND = "NO_GROUND"
BAND_TOO_SMALL = "BAND_TOO_SMALL"
TOO_FEW_FRAMES = "TOO_FEW_FRAMES"
NO_MOTION = "NO_MOTION"


@dataclass(frozen=True, slots=True)
class SearchBand:
    """Rows scanned for candidates; ``y_max`` is inclusive."""

    y_min: int
    y_max: int
    ground_y: float
    clipped: bool

    @property
    def height(self) -> int:
        return self.y_max - self.y_min + 1


@dataclass(frozen=True, slots=True)
class FeatureScores:
    """Per-candidate features, each in [0, 1]."""

    sharpness: float
    cadence: float
    concentration: float
    proximity: float
    body_correlation: float

    @property
    def footness(self) -> float:
        value = (
            0.35 * self.sharpness
            + 0.25 * self.cadence
            + 0.2 * self.concentration
            + 0.1 * self.proximity
            - 0.25 * self.body_correlation
        )
        return min(1.0, max(0.0, value))

    def as_dict(self) -> dict[str, float]:
        return {
            "sharpness": self.sharpness,
            "cadence": self.cadence,
            "concentration": self.concentration,
            "proximity": self.proximity,
            "body_correlation": self.body_correlation,
            "footness": self.footness,
        }


@dataclass(frozen=True, slots=True)
class RegionSearch:
    """Full outcome of a region search, accepted or not.

    Attributes:
        region: Accepted region, None when rejected
        candidate: Best rectangle found, kept for diagnostics even when rejected
        reasons: Weakness and rejection tags
        features: Feature scores of the best rectangle
        band: Band that was scanned
        reinit_count: Tracker re-initializations
        avg_shift_px: Mean per-frame tracker shift
        energy_frames: Number of difference images used
    """

    region: ContactRegion | None
    candidate: ContactRegion | None = None
    reasons: tuple[str, ...] = ()
    features: FeatureScores | None = None
    band: SearchBand | None = None
    reinit_count: int = 0
    avg_shift_px: float = 0.0
    energy_frames: int = 0

    @property
    def accepted(self) -> bool:
        return self.region is not None


def _clip01(value: float) -> float:
    return min(1.0, max(0.0, value))


def sharpness_score(series: NDArray[np.float64]) -> float:
    """Strength of the largest energy onsets relative to typical change."""
    if series.size < 2:
        return 0.0
    deltas = np.diff(series)
    positive = np.sort(deltas[deltas > 0])[::-1][:3]
    if positive.size == 0:
        return 0.0
    baseline = float(np.median(np.abs(deltas))) + EPS
    return _clip01(float(positive.mean()) / baseline / 4.0)


def find_peaks(series: NDArray[np.float64]) -> list[int]:
    """Local maxima above mean + 0.5 * std; the first frame of a plateau counts."""
    if series.size < 3:
        return []
    threshold = float(series.mean()) + 0.5 * float(series.std())
    return [
        i
        for i in range(1, series.size - 1)
        if series[i] > threshold and series[i] > series[i - 1] and series[i] >= series[i + 1]
    ]


def cadence_score(series: NDArray[np.float64]) -> float:
    """Regularity of peak spacing: 1 / (1 + CV of intervals)."""
    if series.size < 6:
        return 0.0
    peaks = find_peaks(series)
    if len(peaks) < 3:
        return 0.0
    intervals = np.diff(np.asarray(peaks, dtype=np.float64))
    mean_interval = float(intervals.mean())
    if mean_interval <= 0:
        return 0.0
    cv = float(intervals.std()) / mean_interval
    return 1.0 / (1.0 + cv)


def pearson(a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    """Pearson correlation; 0 when either series is constant."""
    if a.size < 2 or a.size != b.size:
        return 0.0
    da = a - a.mean()
    db = b - b.mean()
    denom = math.sqrt(float(np.dot(da, da)) * float(np.dot(db, db)))
    if denom <= 0:
        return 0.0
    return float(np.dot(da, db)) / denom


def _energy_integrals(frames: Sequence[Frame]) -> NDArray[np.float64]:
    """Integral images of consecutive-frame absolute differences, shape (N, H+1, W+1)."""
    integrals = [
        cv2.integral(cv2.absdiff(curr.pixels, prev.pixels))
        for prev, curr in zip(frames[:-1], frames[1:])
    ]
    return np.stack(integrals).astype(np.float64)


def _rect_sums(
    integrals: NDArray[np.float64],
    xs: NDArray[np.int64],
    ys: NDArray[np.int64],
    width: int,
    height: int,
) -> NDArray[np.float64]:
    """Energy inside each rectangle for every frame, shape (N, K)."""
    return (
        integrals[:, ys + height, xs + width]
        - integrals[:, ys, xs + width]
        - integrals[:, ys + height, xs]
        + integrals[:, ys, xs]
    )


class ContactRegionLocator:
    """Finds and tracks the foot-ground contact rectangle.

    Stateless: the tracker runs over the batch inside each call.
    """

    def __init__(self, settings: ContactRegionSettings | None = None) -> None:
        """Initialize locator with settings.

        Args:
            settings: Search parameters (uses defaults if None)
        """
        self.settings = settings or ContactRegionSettings()

    def locate(self, frames: Sequence[Frame], ground: GroundModel) -> ContactRegion | None:
        """Return the contact region, or None when rejected."""
        return self.search(frames, ground).region

    def search_band(self, ground: GroundModel, width: int, height: int) -> SearchBand | None:
        """Band of rows just above the ground line at the frame centre."""
        if not ground.detected:
            return None
        ground_y = ground.y_at(width / 2.0)
        if ground_y is None or not math.isfinite(ground_y):
            return None

        top = ground_y - self.settings.band_height_px
        y_min = max(0, int(math.floor(top)))
        y_max = min(height - 1, int(math.ceil(ground_y)))
        clipped = top < 0 or math.ceil(ground_y) > height - 1
        return SearchBand(y_min=y_min, y_max=y_max, ground_y=ground_y, clipped=clipped)

    def search(self, frames: Sequence[Frame], ground: GroundModel) -> RegionSearch:
        """Scan the band, score candidates, track the winner.

        Args:
            frames: Grayscale frames of equal size
            ground: Ground model; must not be UNKNOWN

        Returns:
            RegionSearch with the accepted region or the rejection reasons
        """
        s = self.settings
        if not frames:
            return RegionSearch(region=None, reasons=(TOO_FEW_FRAMES,))

        width, height = frames[0].width, frames[0].height
        band = self.search_band(ground, width, height)
        if band is None:
            return RegionSearch(region=None, reasons=(NO_GROUND,))
        if band.height < s.roi_height or width < s.roi_width:
            return RegionSearch(region=None, reasons=(BAND_TOO_SMALL,), band=band)

        window = list(frames[-s.window_frames :])
        if len(window) < 3:
            return RegionSearch(region=None, reasons=(TOO_FEW_FRAMES,), band=band)

        integrals = _energy_integrals(window)
        band_sums = _rect_sums(
            integrals,
            np.array([0], dtype=np.int64),
            np.array([band.y_min], dtype=np.int64),
            width,
            band.height,
        )[:, 0]
        if float(band_sums.sum()) <= 0:
            return RegionSearch(
                region=None, reasons=(NO_MOTION,), band=band, energy_frames=len(integrals)
            )

        ys_range = np.arange(band.y_min, band.y_max + 2 - s.roi_height, s.stride, dtype=np.int64)
        xs_range = np.arange(0, width - s.roi_width + 1, s.stride, dtype=np.int64)
        grid_y, grid_x = np.meshgrid(ys_range, xs_range, indexing="ij")
        cand_y = grid_y.ravel()
        cand_x = grid_x.ravel()

        series = _rect_sums(integrals, cand_x, cand_y, s.roi_width, s.roi_height)
        body_y = max(0, band.y_min - s.roi_height - 2)
        body_series = _rect_sums(
            integrals,
            cand_x,
            np.full_like(cand_y, body_y),
            s.roi_width,
            s.roi_height,
        )
        band_density = float(band_sums.mean()) / (width * band.height)

        best_idx = -1
        best_features: FeatureScores | None = None
        for k in range(cand_x.size):
            features = self._score_candidate(
                series[:, k],
                body_series[:, k],
                int(cand_x[k]),
                int(cand_y[k]),
                band,
                band_density,
                ground,
            )
            if best_features is None or features.footness > best_features.footness:
                best_idx, best_features = k, features

        if best_features is None:
            return RegionSearch(region=None, reasons=(BAND_TOO_SMALL,), band=band)
        anchor_x, anchor_y = int(cand_x[best_idx]), int(cand_y[best_idx])
        stability, reinit_count, avg_shift = self._track(
            integrals, anchor_x, anchor_y, band, width
        )

        footness = best_features.footness
        confidence = 0.5 * footness + 0.5 * stability
        reasons = self._reason_tags(best_features)
        accepted = confidence >= s.min_confidence
        if not accepted:
            reasons.append(LOW_CONFIDENCE)

        candidate = ContactRegion(
            x=anchor_x,
            y=anchor_y,
            width=s.roi_width,
            height=s.roi_height,
            footness=footness,
            stability=stability,
            confidence=confidence,
            reasons=tuple(reasons),
        )
        if accepted:
            logger.debug(
                "Contact region at (%d, %d) footness=%.3f stability=%.3f",
                anchor_x,
                anchor_y,
                footness,
                stability,
            )
        else:
            logger.info("Contact region rejected: confidence %.3f %s", confidence, reasons)

        return RegionSearch(
            region=candidate if accepted else None,
            candidate=candidate,
            reasons=tuple(reasons),
            features=best_features,
            band=band,
            reinit_count=reinit_count,
            avg_shift_px=avg_shift,
            energy_frames=len(integrals),
        )

    def _score_candidate(
        self,
        series: NDArray[np.float64],
        body_series: NDArray[np.float64],
        x: int,
        y: int,
        band: SearchBand,
        band_density: float,
        ground: GroundModel,
    ) -> FeatureScores:
        s = self.settings
        area = s.roi_width * s.roi_height

        if band_density > 0:
            concentration = _clip01((float(series.mean()) / area) / band_density / 2.0)
        else:
            concentration = 0.0

        cx = x + s.roi_width / 2.0
        cy = y + s.roi_height / 2.0
        ground_y = ground.y_at(cx)
        if ground_y is None:
            ground_y = band.ground_y
        above = ground_y - cy
        proximity = 0.0 if above < 0 else _clip01(1.0 - above / (s.band_height_px + 1))

        return FeatureScores(
            sharpness=sharpness_score(series),
            cadence=cadence_score(series),
            concentration=concentration,
            proximity=proximity,
            body_correlation=max(0.0, pearson(series, body_series)),
        )

    def _track(
        self,
        integrals: NDArray[np.float64],
        anchor_x: int,
        anchor_y: int,
        band: SearchBand,
        width: int,
    ) -> tuple[float, int, float]:
        """Follow the anchor rectangle with a bounded local search.

        Returns:
            Tuple of (stability, re-initialization count, mean shift in px)
        """
        s = self.settings
        bound = s.track_max_shift_px
        offsets = [(0, 0)] + [
            (dx, dy)
            for dy in range(-bound, bound + 1)
            for dx in range(-bound, bound + 1)
            if (dx, dy) != (0, 0)
        ]
        off_x = np.array([o[0] for o in offsets], dtype=np.int64)
        off_y = np.array([o[1] for o in offsets], dtype=np.int64)
        x_hi = width - s.roi_width
        y_lo, y_hi = band.y_min, band.y_max + 1 - s.roi_height

        x, y = anchor_x, anchor_y
        locked = 0
        reinit_count = 0
        total_shift = 0.0
        for t in range(integrals.shape[0]):
            xs = np.clip(x + off_x, 0, x_hi)
            ys = np.clip(y + off_y, y_lo, y_hi)
            sums = _rect_sums(integrals[t : t + 1], xs, ys, s.roi_width, s.roi_height)[0]
            best = int(np.argmax(sums))
            new_x, new_y = int(xs[best]), int(ys[best])
            total_shift += math.hypot(new_x - x, new_y - y)

            if max(abs(new_x - anchor_x), abs(new_y - anchor_y)) <= bound:
                locked += 1
                x, y = new_x, new_y
            else:
                reinit_count += 1
                x, y = anchor_x, anchor_y

        count = integrals.shape[0]
        return locked / count, reinit_count, total_shift / count

    @staticmethod
    def _reason_tags(features: FeatureScores) -> list[str]:
        reasons = []
        if features.sharpness < 0.15:
            reasons.append(LOW_SHARPNESS)
        if features.cadence < 0.2:
            reasons.append(LOW_CADENCE)
        if features.concentration < 0.2:
            reasons.append(LOW_CONCENTRATION)
        if features.body_correlation > 0.6:
            reasons.append(HIGH_BODY_CORR)
        return reasons
