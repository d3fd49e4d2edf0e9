"""Tests for the confidence gate."""

from __future__ import annotations

from hop_tracker.analysis.gate import GATE_ERROR_CODE, ConfidenceGate, dedupe, has_valid_events
from hop_tracker.core.config import ConfidenceGateSettings
from hop_tracker.core.contract import EventTiming, FootAngle, JumpAnalysis, JumpEvents


def with_quality(draft: JumpAnalysis, **changes: object) -> JumpAnalysis:
    quality = draft.quality.model_copy(update=changes)
    return draft.model_copy(update={"quality": quality})


def assert_fully_redacted(result: JumpAnalysis) -> None:
    assert result.status == "error"
    assert result.metrics.gct_seconds is None
    assert result.metrics.gct_ms is None
    assert result.metrics.flight_seconds is None
    assert result.events.takeoff.t is None
    assert result.events.landing.t is None
    assert result.error is not None
    assert result.error.code == GATE_ERROR_CODE
    assert result.quality.overall_confidence == 0.0


class TestHardGate:
    """Tests for checks that void the whole result."""

    def test_confident_draft_passes(self, draft_analysis: JumpAnalysis) -> None:
        """A confident, consistent draft is reported unchanged."""
        result = ConfidenceGate().gate(draft_analysis)

        assert result.status == "complete"
        assert result.metrics == draft_analysis.metrics
        assert result.events == draft_analysis.events
        assert result.error is None

    def test_low_confidence(self, draft_analysis: JumpAnalysis) -> None:
        """Overall confidence below the threshold fails the gate."""
        draft = with_quality(draft_analysis, overall_confidence=0.4)

        result = ConfidenceGate().gate(draft)

        assert_fully_redacted(result)
        assert result.error is not None
        assert result.error.message == "Low confidence (0.40 < 0.60; frames-present)."
        assert result.quality.reliability == draft.quality.reliability
        assert "pipeline note" in result.quality.notes

    def test_events_only_needs_higher_confidence(self, draft_analysis: JumpAnalysis) -> None:
        """Without frames the stricter events-only threshold applies."""
        draft = with_quality(draft_analysis, overall_confidence=0.7).model_copy(
            update={"frames": []}
        )

        result = ConfidenceGate().gate(draft)

        assert_fully_redacted(result)
        assert result.error is not None
        assert result.error.message.endswith("events-only).")

    def test_no_evidence(self, draft_analysis: JumpAnalysis) -> None:
        """Neither frames nor valid events means no result."""
        draft = draft_analysis.model_copy(update={"frames": [], "events": JumpEvents()})

        result = ConfidenceGate().gate(draft)

        assert_fully_redacted(result)
        assert result.error is not None
        assert result.error.message.startswith("No evidence")

    def test_pending_draft(self, draft_analysis: JumpAnalysis) -> None:
        """A draft that never completed is refused."""
        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"status": "pending"}))

        assert_fully_redacted(result)
        assert result.error is not None
        assert result.error.message == "Analysis not complete."

    def test_reliability_flags(self, draft_analysis: JumpAnalysis) -> None:
        """Each required reliability flag can fail the gate."""
        reliability = draft_analysis.quality.reliability.model_copy(
            update={"view_ok": False, "contact_detected": False}
        )
        draft = with_quality(draft_analysis, reliability=reliability)

        result = ConfidenceGate().gate(draft)

        assert_fully_redacted(result)
        assert "Bad camera view." in result.quality.notes
        assert "Ground contact not reliably detected." in result.quality.notes
        assert result.quality.reliability.view_ok is False

    def test_ground_flag_optional_by_default(self, draft_analysis: JumpAnalysis) -> None:
        """A missing ground only fails the gate when required."""
        reliability = draft_analysis.quality.reliability.model_copy(
            update={"ground_detected": False}
        )
        draft = with_quality(draft_analysis, reliability=reliability)

        assert ConfidenceGate().gate(draft).status == "complete"
        strict = ConfidenceGate(ConfidenceGateSettings(require_ground_detected=True))
        assert strict.gate(draft).status == "error"

    def test_gct_out_of_range(self, draft_analysis: JumpAnalysis) -> None:
        """An implausible GCT fails the sanity check."""
        metrics = draft_analysis.metrics.model_copy(update={"gct_seconds": 0.5, "gct_ms": 500})

        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"metrics": metrics}))

        assert_fully_redacted(result)
        assert "GCT seconds failed sanity checks." in result.quality.notes

    def test_gct_unit_mismatch(self, draft_analysis: JumpAnalysis) -> None:
        """Seconds and milliseconds must agree within tolerance."""
        metrics = draft_analysis.metrics.model_copy(update={"gct_ms": 300})

        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"metrics": metrics}))

        assert_fully_redacted(result)
        assert "GCT ms/s mismatch." in result.quality.notes

    def test_landing_before_takeoff(self, draft_analysis: JumpAnalysis) -> None:
        """Events in the wrong order fail the sanity check."""
        events = JumpEvents(
            takeoff=EventTiming(t=0.9, frame=9, confidence=0.9),
            landing=EventTiming(t=0.5, frame=5, confidence=0.9),
        )

        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"events": events}))

        assert_fully_redacted(result)
        assert "Landing time must be after takeoff." in result.quality.notes

    def test_failure_keeps_diagnostics(self, draft_analysis: JumpAnalysis) -> None:
        """Frames are capped, provenance and reliability survive."""
        draft = with_quality(draft_analysis, overall_confidence=0.1)

        result = ConfidenceGate().gate(draft)

        assert len(result.frames) == 12
        assert result.frames[0] == draft.frames[0]
        assert result.measurement_status == "real"
        assert result.ai_summary.tags

    def test_failure_can_drop_frames(self, draft_analysis: JumpAnalysis) -> None:
        """Frames can be dropped entirely on failure."""
        gate = ConfidenceGate(ConfidenceGateSettings(keep_frames_on_failure=False))

        result = gate.gate(with_quality(draft_analysis, overall_confidence=0.1))

        assert result.frames == []


class TestSoftGate:
    """Tests for per-metric redaction."""

    def test_low_metric_confidence_redacts_timings(self, draft_analysis: JumpAnalysis) -> None:
        """Metrics below their own threshold are nulled; the result stays complete."""
        result = ConfidenceGate().gate(with_quality(draft_analysis, overall_confidence=0.62))

        assert result.status == "complete"
        assert result.metrics.gct_seconds is None
        assert result.metrics.gct_ms is None
        assert result.metrics.flight_seconds is None
        assert result.events.takeoff.t == 0.5
        assert "GCT redacted (low metric confidence 0.62)." in result.quality.notes

    def test_low_event_confidence_redacts_events(self, draft_analysis: JumpAnalysis) -> None:
        """Events are dropped together when either is weak."""
        events = draft_analysis.events.model_copy(deep=True)
        events.landing.confidence = 0.5

        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"events": events}))

        assert result.status == "complete"
        assert result.events.takeoff.t is None
        assert result.events.landing.t is None
        assert result.metrics.gct_ms == 250

    def test_weak_foot_angle_is_redacted(self, draft_analysis: JumpAnalysis) -> None:
        """A foot angle below its threshold is removed."""
        metrics = draft_analysis.metrics.model_copy(
            update={"foot_angle_deg": FootAngle(takeoff=12.0, landing=8.0, confidence=0.2)}
        )

        result = ConfidenceGate().gate(draft_analysis.model_copy(update={"metrics": metrics}))

        assert result.status == "complete"
        assert result.metrics.foot_angle_deg.takeoff is None
        assert result.metrics.gct_ms == 250

    def test_partial_metrics_disallowed(self, draft_analysis: JumpAnalysis) -> None:
        """Any soft redaction escalates to a failure when partial results are off."""
        gate = ConfidenceGate(ConfidenceGateSettings(allow_partial_metrics=False))

        result = gate.gate(with_quality(draft_analysis, overall_confidence=0.62))

        assert_fully_redacted(result)
        assert result.error is not None
        assert result.error.message.startswith("GCT redacted")
        assert result.quality.notes[-1] == "Partial metrics not allowed; failing gate."

    def test_missing_foot_angle_is_not_a_redaction(self, draft_analysis: JumpAnalysis) -> None:
        """A foot angle that was never measured does not block a strict gate."""
        gate = ConfidenceGate(ConfidenceGateSettings(allow_partial_metrics=False))

        assert gate.gate(draft_analysis).status == "complete"


class TestGateProperties:
    """Tests for gate invariants."""

    def test_gate_is_idempotent(self, draft_analysis: JumpAnalysis) -> None:
        """Gating a complete gated result changes nothing."""
        gate = ConfidenceGate()
        for overall in (0.8, 0.62):
            once = gate.gate(with_quality(draft_analysis, overall_confidence=overall))
            assert gate.gate(once) == once

    def test_input_is_not_mutated(self, draft_analysis: JumpAnalysis) -> None:
        """The draft is left as it was."""
        draft = with_quality(draft_analysis, overall_confidence=0.62)
        before = draft.model_copy(deep=True)

        ConfidenceGate().gate(draft)

        assert draft == before

    def test_dedupe(self) -> None:
        """Empty and repeated notes are dropped in order."""
        assert dedupe(["a", "", "b", "a", "c"]) == ["a", "b", "c"]

    def test_has_valid_events(self, draft_analysis: JumpAnalysis) -> None:
        """Valid events need both times with landing after takeoff."""
        assert has_valid_events(draft_analysis)
        assert not has_valid_events(JumpAnalysis())
