"""End-to-end tests for the analysis pipeline."""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from hop_tracker.core.config import ContactSignalSettings, Settings
from hop_tracker.core.exceptions import InvalidFrameBatchError
from hop_tracker.core.types import Frame, FrameBatch, MeasurementStatus
from hop_tracker.pipeline.processor import (
    PIPELINE_ERROR_CODE,
    PLACEHOLDER_CONFIDENCE_CAP,
    HopAnalyzer,
    analyze_frames,
    validate_batch,
)

from .conftest import HEIGHT, WIDTH


@pytest.fixture
def clean_settings() -> Settings:
    """Settings whose contact signal binarizes the synthetic clip exactly."""
    return Settings(signal=ContactSignalSettings(norm_method="percentile", ema_alpha=1.0))


def assert_redacted(payload: dict[str, Any]) -> None:
    assert payload["status"] == "error"
    assert payload["metrics"]["gctSeconds"] is None
    assert payload["metrics"]["gctMs"] is None
    assert payload["metrics"]["flightSeconds"] is None
    assert payload["events"]["takeoff"]["t"] is None
    assert payload["events"]["landing"]["t"] is None


class TestValidateBatch:
    """Tests for input validation."""

    def test_empty(self) -> None:
        """An empty batch is invalid."""
        with pytest.raises(InvalidFrameBatchError):
            validate_batch([])

    def test_mixed_sizes(self) -> None:
        """All frames must share one size."""
        frames = [
            Frame(np.zeros((10, 10), dtype=np.uint8), 0.0, 0),
            Frame(np.zeros((12, 10), dtype=np.uint8), 33.0, 1),
        ]
        with pytest.raises(InvalidFrameBatchError):
            validate_batch(frames)

    def test_color_frames(self) -> None:
        """Frames must be single-channel."""
        with pytest.raises(InvalidFrameBatchError):
            validate_batch([Frame(np.zeros((10, 10, 3), dtype=np.uint8), 0.0, 0)])


class TestRefusedInput:
    """Tests for batches that cannot produce metrics."""

    def test_empty_batch(self) -> None:
        """No frames gives an error result with no ground."""
        analysis = analyze_frames([])
        payload = analysis.to_payload()

        assert_redacted(payload)
        assert payload["groundSummary"]["type"] == "unknown"
        assert payload["frames"] == []
        assert any("Empty frame batch" in note for note in analysis.quality.notes)

    def test_flat_batch(self, flat_frames: list[Frame]) -> None:
        """A featureless clip has no ground and no metrics."""
        run = HopAnalyzer().run(FrameBatch(frames=tuple(flat_frames)))

        assert_redacted(run.analysis.to_payload())
        assert run.analysis.ground_summary.type == "unknown"
        assert run.report.ground == 0.0
        assert "GROUND_NOT_DETECTED" in run.report.rejection_reasons
        assert not run.report.accepted

    def test_non_increasing_timestamps(self) -> None:
        """Out-of-order timestamps are refused."""
        pixels = np.zeros((HEIGHT, WIDTH), dtype=np.uint8)
        frames = [Frame(pixels, 0.0, 0), Frame(pixels, 0.0, 1), Frame(pixels, 33.0, 2)]

        analysis = analyze_frames(frames)

        assert analysis.status == "error"
        assert any("strictly increasing" in note for note in analysis.quality.notes)

    def test_provider_error_is_noted(self, flat_frames: list[Frame]) -> None:
        """Frame source errors are carried into the notes."""
        batch = FrameBatch(frames=tuple(flat_frames), error="decoder hiccup")

        analysis = HopAnalyzer().analyze(batch)

        assert "Frame source error: decoder hiccup" in analysis.quality.notes


class TestHopClip:
    """Tests on the synthetic hopping clip."""

    def test_clean_clip_completes(self, hop_batch: FrameBatch, clean_settings: Settings) -> None:
        """A clean clip yields plausible, consistent metrics."""
        run = HopAnalyzer(clean_settings).run(hop_batch)
        analysis = run.analysis

        assert analysis.status == "complete"
        assert analysis.measurement_status == "real"
        assert run.trace.events is not None
        assert len(run.trace.events.hops) == 4
        assert analysis.metrics.gct_ms is not None
        assert 150 <= analysis.metrics.gct_ms <= 300
        assert analysis.metrics.gct_seconds == pytest.approx(analysis.metrics.gct_ms / 1000.0)
        assert analysis.metrics.flight_seconds is not None
        assert analysis.events.takeoff.t is not None
        assert analysis.events.landing.t is not None
        assert analysis.events.landing.t > analysis.events.takeoff.t
        assert analysis.ground_summary.type == "hough_polar"
        assert len(analysis.frames) == len(hop_batch)
        assert run.report.accepted

    def test_hops_respect_bounds(self, hop_batch: FrameBatch, clean_settings: Settings) -> None:
        """Every accepted hop is ordered and within the contact bounds."""
        run = HopAnalyzer(clean_settings).run(hop_batch)
        bounds = clean_settings.events

        assert run.trace.events is not None
        assert run.trace.events.hops
        for hop in run.trace.events.hops:
            assert hop.landing_ms < hop.takeoff_ms
            assert bounds.min_gct_ms <= hop.gct_ms <= bounds.max_gct_ms
            if hop.flight_ms is not None:
                assert bounds.min_flight_ms <= hop.flight_ms <= bounds.max_flight_ms
        assert run.analysis.metrics.gct_seconds is not None
        assert run.analysis.metrics.gct_seconds <= bounds.max_gct_ms / 1000.0

    def test_output_is_deterministic(self, hop_batch: FrameBatch) -> None:
        """Identical input produces an identical payload."""
        analyzer = HopAnalyzer()

        assert analyzer.analyze(hop_batch).to_payload() == analyzer.analyze(hop_batch).to_payload()

    def test_placeholder_is_never_reported(
        self, placeholder_batch: FrameBatch, clean_settings: Settings
    ) -> None:
        """Placeholder frames are capped below the gate and keep their provenance."""
        run = HopAnalyzer(clean_settings).run(placeholder_batch)

        assert run.report.overall <= PLACEHOLDER_CONFIDENCE_CAP
        assert_redacted(run.analysis.to_payload())
        assert run.analysis.measurement_status == "synthetic_placeholder"
        assert run.analysis.to_payload()["measurementStatus"] == "synthetic_placeholder"
        assert any("placeholder" in note for note in run.analysis.quality.notes)

    def test_placeholder_via_analyze_frames(self, hop_frames: list[Frame]) -> None:
        """The provenance flag passed to analyze_frames reaches the result."""
        analysis = analyze_frames(
            hop_frames, measurement_status=MeasurementStatus.SYNTHETIC_PLACEHOLDER
        )

        assert analysis.measurement_status == "synthetic_placeholder"
        assert analysis.status == "error"


class TestFaults:
    """Tests for unexpected internal failures."""

    def test_stage_exception_becomes_error(
        self, hop_batch: FrameBatch, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A raising stage yields PIPELINE_ERROR instead of propagating."""
        analyzer = HopAnalyzer()

        def boom(frames: object) -> None:
            raise RuntimeError("detector exploded")

        monkeypatch.setattr(analyzer._ground, "detect", boom)
        analysis = analyzer.analyze(hop_batch)

        assert analysis.status == "error"
        assert analysis.error is not None
        assert analysis.error.code == PIPELINE_ERROR_CODE
        assert "detector exploded" in analysis.error.message
        assert analysis.metrics.gct_ms is None

    def test_gate_exception_becomes_error(
        self, hop_batch: FrameBatch, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Failures outside the stages are caught too."""
        analyzer = HopAnalyzer()

        def boom(draft: object) -> None:
            raise ValueError("gate exploded")

        monkeypatch.setattr(analyzer._gate, "gate", boom)
        run = analyzer.run(hop_batch)

        assert run.analysis.status == "error"
        assert run.analysis.error is not None
        assert run.analysis.error.code == PIPELINE_ERROR_CODE
        assert run.report.rejection_reasons == (PIPELINE_ERROR_CODE,)
