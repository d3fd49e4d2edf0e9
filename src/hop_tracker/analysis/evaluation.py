"""Accuracy evaluation of detected events against ground-truth labels.

This module is pure logic with NO I/O and NO OpenCV imports. Label
persistence is delegated to an injected ``LabelStore``.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field

from hop_tracker.analysis.metrics import ErrorMetrics, compute_error_metrics
from hop_tracker.core.exceptions import LabelStoreError
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import ContactEvent, EventType

logger = get_logger(__name__)

DEFAULT_TOLERANCE_MS = 30.0


@dataclass(frozen=True, slots=True)
class Label:
    """A hand-labelled event time."""

    event_type: EventType
    time_ms: float
    confidence: float | None = None


@dataclass(frozen=True, slots=True)
class VideoLabels:
    """All labels for one video, in time order."""

    video_id: str
    video_uri: str
    labels: tuple[Label, ...] = ()


@dataclass(frozen=True, slots=True)
class MatchedPair:
    """A label and the detected event matched to it.

    Attributes:
        label: Ground-truth label
        event: Detected event
        error_ms: Detected minus labelled time (signed)
        used_refined: True when the refined timestamp was compared
    """

    label: Label
    event: ContactEvent
    error_ms: float
    used_refined: bool


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Matching outcome and error statistics."""

    matched: tuple[MatchedPair, ...]
    unmatched_labels: tuple[Label, ...]
    unmatched_events: tuple[ContactEvent, ...]
    landing: ErrorMetrics = field(default_factory=ErrorMetrics)
    takeoff: ErrorMetrics = field(default_factory=ErrorMetrics)
    gct: ErrorMetrics | None = None
    video_id: str = ""

    @property
    def label_count(self) -> int:
        return len(self.matched) + len(self.unmatched_labels)

    @property
    def event_count(self) -> int:
        return len(self.matched) + len(self.unmatched_events)


def video_id_for(video_uri: str) -> str:
    """Stable label-store key for a video URI."""
    digest = hashlib.sha1(video_uri.encode("utf-8")).hexdigest()
    return f"video_{digest[:12]}"


def match_events(
    labels: Sequence[Label],
    events: Sequence[ContactEvent],
    tolerance_ms: float = DEFAULT_TOLERANCE_MS,
) -> tuple[list[MatchedPair], list[Label], list[ContactEvent]]:
    """Greedy nearest-neighbour matching of labels to detected events.

    Labels are visited in time order; each takes the nearest unused event of
    the same type whose error is within ``tolerance_ms`` (inclusive).

    Returns:
        Tuple of (matched pairs, unmatched labels, unmatched events)
    """
    sorted_labels = sorted(labels, key=lambda lb: lb.time_ms)
    sorted_events = sorted(events, key=lambda ev: (ev.time_ms, ev.frame_index))
    used: set[int] = set()
    matched: list[MatchedPair] = []
    unmatched_labels: list[Label] = []

    for label in sorted_labels:
        best_j = -1
        best_error = float("inf")
        for j, event in enumerate(sorted_events):
            if j in used or event.event_type is not label.event_type:
                continue
            error = abs(event.time_ms - label.time_ms)
            if error <= tolerance_ms and error < best_error:
                best_j, best_error = j, error

        if best_j < 0:
            unmatched_labels.append(label)
            continue

        event = sorted_events[best_j]
        used.add(best_j)
        matched.append(
            MatchedPair(
                label=label,
                event=event,
                error_ms=event.time_ms - label.time_ms,
                used_refined=event.refined_timestamp_ms is not None,
            )
        )

    unmatched_events = [ev for j, ev in enumerate(sorted_events) if j not in used]
    return matched, unmatched_labels, unmatched_events


def evaluate_events(
    labels: Sequence[Label],
    events: Sequence[ContactEvent],
    tolerance_ms: float = DEFAULT_TOLERANCE_MS,
    video_id: str = "",
) -> EvaluationResult:
    """Match events to labels and summarize timing errors.

    GCT errors come from adjacent landing -> takeoff label pairs whose two
    labels were both matched.

    Args:
        labels: Ground-truth labels
        events: Detected landings and takeoffs
        tolerance_ms: Maximum absolute error for a match
        video_id: Key of the evaluated video, carried into the result

    Returns:
        EvaluationResult with per-type and GCT error metrics
    """
    matched, unmatched_labels, unmatched_events = match_events(labels, events, tolerance_ms)
    by_label = {id(pair.label): pair for pair in matched}

    landing_errors = [p.error_ms for p in matched if p.label.event_type is EventType.LANDING]
    takeoff_errors = [p.error_ms for p in matched if p.label.event_type is EventType.TAKEOFF]

    gct_errors = []
    sorted_labels = sorted(labels, key=lambda lb: lb.time_ms)
    for curr, nxt in zip(sorted_labels, sorted_labels[1:]):
        if curr.event_type is not EventType.LANDING or nxt.event_type is not EventType.TAKEOFF:
            continue
        landing_pair = by_label.get(id(curr))
        takeoff_pair = by_label.get(id(nxt))
        if landing_pair is None or takeoff_pair is None:
            continue
        label_gct = nxt.time_ms - curr.time_ms
        detected_gct = takeoff_pair.event.time_ms - landing_pair.event.time_ms
        gct_errors.append(detected_gct - label_gct)

    logger.debug(
        "Matched %d/%d labels within %.1f ms", len(matched), len(labels), tolerance_ms
    )
    return EvaluationResult(
        matched=tuple(matched),
        unmatched_labels=tuple(unmatched_labels),
        unmatched_events=tuple(unmatched_events),
        landing=compute_error_metrics(landing_errors),
        takeoff=compute_error_metrics(takeoff_errors),
        gct=compute_error_metrics(gct_errors) if gct_errors else None,
        video_id=video_id,
    )


class LabelStore(ABC):
    """Key-value persistence for ground-truth labels, keyed by video id."""

    @abstractmethod
    def load(self, video_id: str) -> VideoLabels | None:
        """Labels for a video, or None if none were saved."""

    @abstractmethod
    def save(self, labels: VideoLabels) -> None:
        """Insert or replace labels for ``labels.video_id``."""

    @abstractmethod
    def delete(self, video_id: str) -> None:
        """Remove labels for a video; missing ids are ignored."""

    def add_label(self, video_uri: str, label: Label) -> VideoLabels:
        """Append a label for a video, keeping labels in time order."""
        video_id = video_id_for(video_uri)
        existing = self.load(video_id)
        current = existing.labels if existing else ()
        updated = VideoLabels(
            video_id=video_id,
            video_uri=video_uri,
            labels=tuple(sorted(current + (label,), key=lambda lb: lb.time_ms)),
        )
        self.save(updated)
        return updated


class InMemoryLabelStore(LabelStore):
    """Label store backed by a dict; contents live as long as the instance."""

    def __init__(self) -> None:
        self._labels: dict[str, VideoLabels] = {}

    def load(self, video_id: str) -> VideoLabels | None:
        return self._labels.get(video_id)

    def save(self, labels: VideoLabels) -> None:
        if not labels.video_id:
            raise LabelStoreError("Cannot save labels without a video id")
        self._labels[labels.video_id] = labels

    def delete(self, video_id: str) -> None:
        self._labels.pop(video_id, None)

    def __len__(self) -> int:
        return len(self._labels)
