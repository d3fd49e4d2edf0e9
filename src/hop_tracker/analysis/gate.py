"""Confidence gate: decides what, if anything, may be reported.

This module is pure logic with NO I/O and NO OpenCV imports.

Two tiers are applied to a draft result. Hard checks (status, evidence,
overall confidence, reliability flags, sanity) void every metric and event.
Soft checks null individual metrics whose own confidence is too low.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from hop_tracker.core.config import ConfidenceGateSettings
from hop_tracker.core.contract import (
    ErrorInfo,
    EventTiming,
    FootAngle,
    JumpAnalysis,
    JumpEvents,
    JumpMetrics,
    Quality,
    Summary,
)
from hop_tracker.core.logging import get_logger

logger = get_logger(__name__)

GATE_ERROR_CODE = "CONFIDENCE_GATE"
FAILURE_SUMMARY = "Insufficient confidence to report metrics."
FAILURE_TAGS = ["confidence-gate", "metrics-redacted"]


def dedupe(notes: Iterable[str]) -> list[str]:
    """Drop empty and repeated notes, keeping first occurrences in order."""
    return list(dict.fromkeys(n for n in notes if n))


def has_valid_events(analysis: JumpAnalysis) -> bool:
    """True when both events have times and the landing follows the takeoff."""
    takeoff_t = analysis.events.takeoff.t
    landing_t = analysis.events.landing.t
    return takeoff_t is not None and landing_t is not None and landing_t > takeoff_t


class ConfidenceGate:
    """Applies reporting thresholds to a draft analysis.

    ``gate`` never mutates its input and is idempotent on its own
    ``complete`` output.
    """

    def __init__(self, settings: ConfidenceGateSettings | None = None) -> None:
        """Initialize gate with settings.

        Args:
            settings: Thresholds and requirements (uses defaults if None)
        """
        self.settings = settings or ConfidenceGateSettings()

    def gate(self, draft: JumpAnalysis) -> JumpAnalysis:
        """Gate a draft result.

        Args:
            draft: Result assembled by the pipeline

        Returns:
            A new result: ``complete`` with possibly redacted metrics, or
            ``error`` with every metric and event redacted
        """
        s = self.settings
        user_notes = list(draft.quality.notes)

        if draft.status != "complete":
            return self._hard_fail(draft, user_notes, ["Analysis not complete."])

        frames_ok = len(draft.frames) > 0
        events_ok = has_valid_events(draft)
        if s.require_frames_or_events and not (frames_ok or events_ok):
            return self._hard_fail(
                draft,
                user_notes,
                ["No evidence (no frames and no valid takeoff/landing events)."],
            )

        overall = draft.quality.overall_confidence
        if frames_ok:
            required, evidence = s.min_overall_confidence, "frames-present"
        elif events_ok:
            required, evidence = s.min_overall_confidence_events_only, "events-only"
        else:
            required, evidence = s.min_overall_confidence, "no-evidence"
        if not (math.isfinite(overall) and overall >= required):
            return self._hard_fail(
                draft,
                user_notes,
                [f"Low confidence ({overall:.2f} < {required:.2f}; {evidence})."],
            )

        reliability_notes = self._reliability_notes(draft)
        if reliability_notes:
            return self._hard_fail(draft, user_notes, reliability_notes)

        sanity_notes = self._sanity_notes(draft)
        if sanity_notes:
            return self._hard_fail(draft, user_notes, sanity_notes)

        return self._soft_gate(draft, user_notes)

    def _reliability_notes(self, draft: JumpAnalysis) -> list[str]:
        s = self.settings
        rel = draft.quality.reliability
        notes = []
        if s.require_view_ok and not rel.view_ok:
            notes.append("Bad camera view.")
        if s.require_joints_tracked and not rel.joints_tracked:
            notes.append("Contact region not reliably tracked.")
        if s.require_contact_detected and not rel.contact_detected:
            notes.append("Ground contact not reliably detected.")
        if s.require_ground_detected and not rel.ground_detected:
            notes.append("Ground not detected.")
        return notes

    def _sanity_notes(self, draft: JumpAnalysis) -> list[str]:
        s = self.settings
        m = draft.metrics
        notes = []

        if m.gct_seconds is not None and not (
            math.isfinite(m.gct_seconds) and 0 <= m.gct_seconds <= s.max_gct_seconds
        ):
            notes.append("GCT seconds failed sanity checks.")
        if m.flight_seconds is not None and not (
            math.isfinite(m.flight_seconds) and 0 <= m.flight_seconds <= s.max_flight_seconds
        ):
            notes.append("Flight time failed sanity checks.")
        if (
            m.gct_seconds is not None
            and m.gct_ms is not None
            and math.isfinite(m.gct_seconds)
            and abs(m.gct_seconds * 1000.0 - m.gct_ms) > s.gct_ms_tolerance
        ):
            notes.append("GCT ms/s mismatch.")

        takeoff_t = draft.events.takeoff.t
        landing_t = draft.events.landing.t
        if takeoff_t is not None and landing_t is not None and landing_t <= takeoff_t:
            notes.append("Landing time must be after takeoff.")
        return notes

    def _soft_gate(self, draft: JumpAnalysis, user_notes: list[str]) -> JumpAnalysis:
        s = self.settings
        overall = draft.quality.overall_confidence
        metrics = draft.metrics.model_copy(deep=True)
        events = draft.events.model_copy(deep=True)
        notes: list[str] = []

        if metrics.gct_seconds is not None or metrics.gct_ms is not None:
            if overall < s.min_gct_confidence:
                metrics.gct_seconds = None
                metrics.gct_ms = None
                metrics.gct_seconds_left = metrics.gct_seconds_right = None
                metrics.gct_ms_left = metrics.gct_ms_right = None
                notes.append(f"GCT redacted (low metric confidence {overall:.2f}).")

        if metrics.flight_seconds is not None and overall < s.min_flight_confidence:
            metrics.flight_seconds = None
            notes.append(f"Flight redacted (low metric confidence {overall:.2f}).")

        if events.takeoff.t is not None or events.landing.t is not None:
            events_conf = min(events.takeoff.confidence, events.landing.confidence)
            if events_conf < s.min_events_confidence:
                events = JumpEvents()
                notes.append(f"Events redacted (low event confidence {events_conf:.2f}).")

        angle = metrics.foot_angle_deg
        if angle.takeoff is not None or angle.landing is not None:
            if angle.confidence < s.min_foot_angle_confidence:
                metrics.foot_angle_deg = FootAngle()
                notes.append(
                    f"Foot angle redacted (low foot-angle confidence {angle.confidence:.2f})."
                )

        if notes and not s.allow_partial_metrics:
            notes.append("Partial metrics not allowed; failing gate.")
            return self._hard_fail(draft, user_notes, notes)

        if notes:
            logger.info("Confidence gate redacted metrics: %s", notes)

        quality = draft.quality.model_copy(deep=True)
        quality.notes = dedupe(user_notes + notes)
        return draft.model_copy(
            update={"metrics": metrics, "events": events, "quality": quality}, deep=True
        )

    def _hard_fail(
        self,
        draft: JumpAnalysis,
        user_notes: list[str],
        gate_notes: list[str],
    ) -> JumpAnalysis:
        """Redact everything, keeping diagnostics."""
        s = self.settings
        logger.info("Confidence gate refused result: %s", gate_notes[0])

        frames = []
        if s.keep_frames_on_failure:
            frames = [f.model_copy() for f in draft.frames[: s.max_frames_on_failure]]

        return JumpAnalysis(
            status="error",
            measurement_status=draft.measurement_status,
            metrics=JumpMetrics(),
            events=JumpEvents(takeoff=EventTiming(), landing=EventTiming()),
            frames=frames,
            ground_summary=draft.ground_summary.model_copy(deep=True),
            quality=Quality(
                overall_confidence=0.0,
                notes=dedupe(user_notes + gate_notes),
                reliability=draft.quality.reliability.model_copy(),
                pipeline_debug=draft.quality.pipeline_debug.model_copy(deep=True),
            ),
            ai_summary=Summary(text=FAILURE_SUMMARY, tags=list(FAILURE_TAGS)),
            error=ErrorInfo(message=gate_notes[0], code=GATE_ERROR_CODE),
            analysis_debug=(
                draft.analysis_debug.model_copy(deep=True) if draft.analysis_debug else None
            ),
        )
