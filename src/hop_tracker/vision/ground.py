"""Camera-orientation-invariant ground line detection.

Each frame votes for candidate lines with a magnitude-weighted polar Hough
transform over Sobel edges. Candidates are then clustered across frames and
the cluster that is persistent, well supported, stable, and not near-vertical
is reported as the ground line.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import cv2
import numpy as np
from numpy.typing import NDArray

from hop_tracker.core.config import GroundDetectionSettings
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import Frame, GroundModel, LineSegment

logger = get_logger(__name__)

STABILITY_SCALE = 200.0
PLAUSIBILITY_WIDTH = 0.05


@dataclass(frozen=True, slots=True)
class LineCandidate:
    """One Hough peak from a single frame."""

    theta: float
    rho: float
    score: float
    segment: LineSegment | None = None


@dataclass(slots=True)
class LineCluster:
    """Running statistics of candidates assigned to one line hypothesis."""

    theta: float
    rho: float
    count: int = 0
    support: float = 0.0
    frames: set[int] = field(default_factory=set)
    _m2_theta: float = 0.0
    _m2_rho: float = 0.0

    def add(self, theta: float, rho: float, score: float, frame_pos: int) -> None:
        """Fold a candidate (already aligned to this cluster) into the statistics."""
        self.count += 1
        d_theta = theta - self.theta
        d_rho = rho - self.rho
        self.theta += d_theta / self.count
        self.rho += d_rho / self.count
        self._m2_theta += d_theta * (theta - self.theta)
        self._m2_rho += d_rho * (rho - self.rho)
        self.support += score
        self.frames.add(frame_pos)

    @property
    def theta_std(self) -> float:
        return math.sqrt(self._m2_theta / self.count) if self.count else 0.0

    @property
    def rho_std(self) -> float:
        return math.sqrt(self._m2_rho / self.count) if self.count else 0.0

    def normalized(self) -> tuple[float, float]:
        """Mean line with theta folded back into [0, pi)."""
        return _normalize_line(self.theta, self.rho)


@dataclass(frozen=True, slots=True)
class GroundHistory:
    """Fixed-capacity ring of per-frame candidates for streaming updates.

    Attributes:
        capacity: Maximum number of frames kept
        frames: Candidate sets, oldest first
        width: Width of the most recent frame
        height: Height of the most recent frame
    """

    capacity: int
    frames: tuple[tuple[LineCandidate, ...], ...] = ()
    width: int = 0
    height: int = 0


def _normalize_line(theta: float, rho: float) -> tuple[float, float]:
    # (theta, rho) and (theta - pi, -rho) describe the same line
    while theta < 0.0:
        theta += math.pi
        rho = -rho
    while theta >= math.pi:
        theta -= math.pi
        rho = -rho
    return theta, rho


def _align(theta: float, rho: float, ref_theta: float) -> tuple[float, float]:
    """Re-express a line so its theta lies within pi/2 of ``ref_theta``."""
    if theta - ref_theta > math.pi / 2:
        return theta - math.pi, -rho
    if ref_theta - theta > math.pi / 2:
        return theta + math.pi, -rho
    return theta, rho


def sobel_magnitude(pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """3x3 Sobel gradient magnitude with the one-pixel border zeroed."""
    gray = pixels.astype(np.float32)
    grad_x = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    grad_y = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(grad_x, grad_y)

    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude


def edge_mask(magnitude: NDArray[np.float32], std_factor: float = 1.5) -> NDArray[np.bool_]:
    """Pixels whose gradient exceeds mean + std_factor * std of the interior."""
    if magnitude.shape[0] < 3 or magnitude.shape[1] < 3:
        return np.zeros(magnitude.shape, dtype=bool)

    interior = magnitude[1:-1, 1:-1]
    threshold = float(interior.mean()) + std_factor * float(interior.std())
    return (magnitude > threshold) & (magnitude > 0)


def line_endpoints(theta: float, rho: float, width: int, height: int) -> LineSegment | None:
    """Clip an infinite polar line to the frame rectangle.

    Returns:
        Segment between the two most distant border intersections, or None
        if the line misses the frame
    """
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    x_max, y_max = width - 1, height - 1
    points: list[tuple[float, float]] = []

    if abs(sin_t) > 1e-9:
        for x in (0.0, float(x_max)):
            y = (rho - x * cos_t) / sin_t
            if -1e-6 <= y <= y_max + 1e-6:
                points.append((x, min(max(y, 0.0), float(y_max))))
    if abs(cos_t) > 1e-9:
        for y in (0.0, float(y_max)):
            x = (rho - y * sin_t) / cos_t
            if -1e-6 <= x <= x_max + 1e-6:
                points.append((min(max(x, 0.0), float(x_max)), y))

    best: tuple[tuple[float, float], tuple[float, float]] | None = None
    best_len = 0.0
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            length = math.dist(points[i], points[j])
            if length > best_len + 1e-9:
                best_len = length
                best = (points[i], points[j])

    if best is None:
        return None
    (x1, y1), (x2, y2) = best
    return LineSegment(x1, y1, x2, y2)


def hough_candidates(
    pixels: NDArray[np.uint8],
    settings: GroundDetectionSettings,
) -> tuple[LineCandidate, ...]:
    """Top-K magnitude-weighted Hough peaks for one frame.

    Args:
        pixels: Grayscale frame
        settings: Detection parameters

    Returns:
        Candidates sorted by descending score; ties keep bin order
    """
    height, width = pixels.shape[:2]
    magnitude = sobel_magnitude(pixels)
    mask = edge_mask(magnitude, settings.edge_std_factor)
    ys, xs = np.nonzero(mask)
    if xs.size == 0:
        return ()

    weights = magnitude[ys, xs].astype(np.float64)
    theta_steps = settings.theta_steps
    thetas = np.arange(theta_steps, dtype=np.float64) * (math.pi / theta_steps)
    max_rho = math.hypot(width, height)
    rho_res = settings.rho_resolution_px
    rho_bins = int(math.ceil(2.0 * max_rho / rho_res)) + 1

    rhos = np.outer(xs.astype(np.float64), np.cos(thetas)) + np.outer(
        ys.astype(np.float64), np.sin(thetas)
    )
    rho_idx = np.rint((rhos + max_rho) / rho_res).astype(np.int64)
    flat_idx = np.arange(theta_steps, dtype=np.int64)[np.newaxis, :] * rho_bins + rho_idx
    votes = np.broadcast_to(weights[:, np.newaxis], flat_idx.shape)
    accumulator = np.bincount(
        flat_idx.ravel(), weights=votes.ravel(), minlength=theta_steps * rho_bins
    )

    order = np.argsort(-accumulator, kind="stable")[: settings.top_k]
    candidates = []
    for bin_idx in order:
        score = float(accumulator[bin_idx])
        if score <= 0:
            break
        theta = float(thetas[bin_idx // rho_bins])
        rho = float((bin_idx % rho_bins) * rho_res - max_rho)
        candidates.append(
            LineCandidate(theta, rho, score, line_endpoints(theta, rho, width, height))
        )
    return tuple(candidates)


def cluster_candidates(
    per_frame: Sequence[Sequence[LineCandidate]],
    settings: GroundDetectionSettings,
) -> list[LineCluster]:
    """Greedy nearest-cluster assignment across frames.

    A candidate joins the closest cluster (by d_theta + d_rho / 100) that is
    within the angle and offset tolerances, else starts a new cluster.
    """
    theta_tol = math.radians(settings.cluster_theta_deg)
    rho_tol = settings.cluster_rho_px
    clusters: list[LineCluster] = []

    for frame_pos, candidates in enumerate(per_frame):
        for cand in candidates:
            best: LineCluster | None = None
            best_theta = best_rho = 0.0
            best_dist = math.inf
            for cluster in clusters:
                theta, rho = _align(cand.theta, cand.rho, cluster.theta)
                d_theta = abs(theta - cluster.theta)
                d_rho = abs(rho - cluster.rho)
                if d_theta > theta_tol or d_rho > rho_tol:
                    continue
                dist = d_theta + d_rho / 100.0
                if dist < best_dist:
                    best, best_dist = cluster, dist
                    best_theta, best_rho = theta, rho

            if best is None:
                best = LineCluster(theta=cand.theta, rho=cand.rho)
                clusters.append(best)
                best_theta, best_rho = cand.theta, cand.rho
            best.add(best_theta, best_rho, cand.score, frame_pos)

    return clusters


def line_plausibility(theta: float) -> float:
    """Down-weights near-vertical lines.

    theta is the normal angle, so vertical lines sit at theta = 0 or pi and
    a horizontal floor sits at pi/2. Formulations that treat theta as the line
    direction penalize theta near pi/2 instead; with a normal angle that would
    penalize the floor itself, so the penalty here falls on theta near 0 or pi.
    """
    theta, _ = _normalize_line(theta, 0.0)
    from_vertical = min(theta, math.pi - theta)
    return 1.0 - math.exp(-(from_vertical**2) / PLAUSIBILITY_WIDTH)


def _cluster_scores(
    cluster: LineCluster,
    frame_count: int,
    max_support: float,
) -> dict[str, float]:
    theta, _ = cluster.normalized()
    persistence = len(cluster.frames) / frame_count
    support = cluster.support / max_support
    theta_std_deg = math.degrees(cluster.theta_std)
    stability = math.exp(-(theta_std_deg**2 + cluster.rho_std**2) / STABILITY_SCALE)
    plausibility = line_plausibility(theta)
    score = 0.4 * persistence + 0.3 * support + 0.2 * stability + 0.1 * plausibility
    return {
        "persistence": persistence,
        "support": support,
        "stability": stability,
        "plausibility": plausibility,
        "score": score,
    }


def select_ground(
    per_frame: Sequence[Sequence[LineCandidate]],
    width: int,
    height: int,
    settings: GroundDetectionSettings,
) -> GroundModel:
    """Cluster per-frame candidates and pick the ground line.

    Args:
        per_frame: Candidates for each frame, in frame order
        width: Frame width, for endpoint clipping
        height: Frame height, for endpoint clipping
        settings: Detection parameters

    Returns:
        POLAR ground model, or UNKNOWN when nothing qualifies
    """
    frame_count = len(per_frame)
    candidate_counts = [len(c) for c in per_frame]
    diagnostics: dict[str, Any] = {
        "frames": frame_count,
        "candidates_per_frame": candidate_counts,
    }
    if frame_count == 0 or sum(candidate_counts) == 0:
        diagnostics["reason"] = "no_edges"
        return GroundModel.unknown(diagnostics=diagnostics)

    clusters = cluster_candidates(per_frame, settings)
    diagnostics["cluster_count"] = len(clusters)
    max_support = max(c.support for c in clusters)
    if max_support <= 0:
        diagnostics["reason"] = "no_support"
        return GroundModel.unknown(diagnostics=diagnostics)

    best: LineCluster | None = None
    best_scores: dict[str, float] = {}
    for cluster in clusters:
        scores = _cluster_scores(cluster, frame_count, max_support)
        if best is None or scores["score"] > best_scores["score"]:
            best, best_scores = cluster, scores

    if best is None:
        diagnostics["reason"] = "no_support"
        return GroundModel.unknown(diagnostics=diagnostics)
    theta, rho = best.normalized()
    confidence = min(
        1.0,
        max(
            0.0,
            0.5 * best_scores["score"]
            + 0.3 * best_scores["persistence"]
            + 0.2 * best_scores["support"],
        ),
    )
    diagnostics.update(best_scores)
    diagnostics["theta"] = theta
    diagnostics["rho"] = rho

    segment = line_endpoints(theta, rho, width, height)
    if segment is None:
        diagnostics["reason"] = "no_frame_intersection"
        return GroundModel.unknown(diagnostics=diagnostics)

    if confidence < settings.min_confidence:
        diagnostics["reason"] = "low_confidence"
        logger.info("Ground line below confidence floor: %.3f", confidence)
        return GroundModel.unknown(confidence=confidence, diagnostics=diagnostics)

    logger.debug(
        "Ground line theta=%.1f deg rho=%.1f px confidence=%.3f (%d clusters)",
        math.degrees(theta),
        rho,
        confidence,
        len(clusters),
    )
    return GroundModel.polar(theta, rho, confidence, segment, diagnostics)


def update_ground_history(
    history: GroundHistory,
    frame: Frame,
    settings: GroundDetectionSettings | None = None,
) -> tuple[GroundHistory, GroundModel]:
    """Pure streaming update: fold one frame into the rolling history.

    Args:
        history: Previous history (not modified)
        frame: Newest frame
        settings: Detection parameters (uses defaults if None)

    Returns:
        Tuple of (new history, ground model over the new history)
    """
    settings = settings or GroundDetectionSettings()
    candidates = hough_candidates(frame.pixels, settings)
    ring = (history.frames + (candidates,))[-history.capacity :]
    updated = replace(history, frames=ring, width=frame.width, height=frame.height)
    return updated, select_ground(ring, frame.width, frame.height, settings)


class GroundLineDetector:
    """Detects the ground line in a batch of frames.

    Stateless: every call to ``detect`` is independent. Streaming callers
    thread a ``GroundHistory`` value through ``update`` themselves.
    """

    def __init__(self, settings: GroundDetectionSettings | None = None) -> None:
        """Initialize detector with settings.

        Args:
            settings: Detection parameters (uses defaults if None)
        """
        self.settings = settings or GroundDetectionSettings()

    def detect(self, frames: Sequence[Frame]) -> GroundModel:
        """Estimate the ground line over all frames.

        Args:
            frames: Grayscale frames of equal size

        Returns:
            POLAR model when a line qualifies, else UNKNOWN
        """
        if not frames:
            return GroundModel.unknown(diagnostics={"frames": 0, "reason": "no_frames"})

        per_frame = [hough_candidates(f.pixels, self.settings) for f in frames]
        return select_ground(per_frame, frames[0].width, frames[0].height, self.settings)

    def new_history(self) -> GroundHistory:
        """Empty history sized from settings."""
        return GroundHistory(capacity=self.settings.history_size)

    def update(self, history: GroundHistory, frame: Frame) -> tuple[GroundHistory, GroundModel]:
        """Streaming variant of ``detect``; see ``update_ground_history``."""
        return update_ground_history(history, frame, self.settings)
