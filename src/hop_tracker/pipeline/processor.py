"""Frame batch analysis pipeline orchestration."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from hop_tracker.analysis.events import EventExtraction, EventExtractor
from hop_tracker.analysis.gate import ConfidenceGate, dedupe
from hop_tracker.analysis.timing import ms_to_seconds
from hop_tracker.core.config import Settings, get_settings
from hop_tracker.core.contract import (
    AnalysisDebug,
    AnalysisFrame,
    ErrorInfo,
    EventTiming,
    GroundSummary,
    HopRecord,
    JumpAnalysis,
    JumpEvents,
    JumpMetrics,
    PipelineDebug,
    Quality,
    RegionDebug,
    Reliability,
    SignalDebug,
    Summary,
)
from hop_tracker.core.exceptions import InvalidFrameBatchError
from hop_tracker.core.logging import get_logger
from hop_tracker.core.result import Fault, Ok, Rejected, StageResult
from hop_tracker.core.types import (
    ConfidenceReport,
    ContactEvent,
    ContactRegion,
    Frame,
    FrameBatch,
    GroundModel,
    GroundModelKind,
    MeasurementStatus,
)
from hop_tracker.vision.ground import GroundLineDetector
from hop_tracker.vision.region import ContactRegionLocator, RegionSearch
from hop_tracker.vision.signal import ContactSignal, ContactSignalComputer

logger = get_logger(__name__)

PIPELINE_ERROR_CODE = "PIPELINE_ERROR"
INVALID_INPUT = "INVALID_INPUT"
PLACEHOLDER_CONFIDENCE_CAP = 0.35

GROUND_WEIGHT = 0.2
REGION_WEIGHT = 0.25
CONTACT_WEIGHT = 0.25
EVENTS_WEIGHT = 0.3


@dataclass
class StageTrace:
    """Outputs of every stage that ran, kept for diagnostics."""

    ground: GroundModel = field(default_factory=GroundModel.unknown)
    region_search: RegionSearch | None = None
    signal: ContactSignal | None = None
    events: EventExtraction | None = None


@dataclass(frozen=True)
class PipelineRun:
    """Gated result plus the intermediate stage outputs."""

    analysis: JumpAnalysis
    report: ConfidenceReport
    trace: StageTrace


def validate_batch(frames: Sequence[Frame]) -> None:
    """Check that frames can be analyzed together.

    Raises:
        InvalidFrameBatchError: On empty batches, non-grayscale buffers,
            mixed sizes, or timestamps that are not strictly increasing
    """
    if not frames:
        raise InvalidFrameBatchError("Empty frame batch")

    shape = frames[0].pixels.shape
    previous_t = -math.inf
    for frame in frames:
        if frame.pixels.ndim != 2 or frame.pixels.dtype.name != "uint8":
            raise InvalidFrameBatchError(f"Frame {frame.index} is not an 8-bit grayscale buffer")
        if frame.pixels.shape != shape:
            raise InvalidFrameBatchError(
                f"Frame {frame.index} has shape {frame.pixels.shape}, expected {shape}"
            )
        if not math.isfinite(frame.timestamp_ms) or frame.timestamp_ms <= previous_t:
            raise InvalidFrameBatchError(
                f"Timestamps must be strictly increasing (frame {frame.index})"
            )
        previous_t = frame.timestamp_ms


def ground_summary(ground: GroundModel) -> GroundSummary:
    """Contract representation of a ground model."""
    summary = GroundSummary(type=ground.kind.value, confidence=ground.confidence)
    if ground.kind is GroundModelKind.SCALAR:
        summary.y = ground.y
    elif ground.kind is GroundModelKind.LINEAR:
        summary.a = ground.slope
        summary.b = ground.intercept
    elif ground.kind is GroundModelKind.POLAR:
        summary.theta = ground.theta
        summary.rho = ground.rho
        if ground.segment is not None:
            seg = ground.segment
            summary.line = (seg.x1, seg.y1, seg.x2, seg.y2)
    return summary


def _event_timing(event: ContactEvent) -> EventTiming:
    return EventTiming(
        t=ms_to_seconds(event.time_ms),
        frame=event.frame_index,
        confidence=event.confidence,
    )


class HopAnalyzer:
    """Runs the ground -> region -> signal -> events -> gate pipeline.

    Stages are stateless; one analyzer can process any number of batches.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize analyzer with settings.

        Args:
            settings: Application settings (uses cached defaults if None)
        """
        self.settings = settings or get_settings()
        self._ground = GroundLineDetector(self.settings.ground)
        self._locator = ContactRegionLocator(self.settings.region)
        self._signal = ContactSignalComputer(self.settings.signal)
        self._extractor = EventExtractor(self.settings.events)
        self._gate = ConfidenceGate(self.settings.gate)

    def analyze(self, batch: FrameBatch) -> JumpAnalysis:
        """Analyze a frame batch and return the gated result."""
        return self.run(batch).analysis

    def run(self, batch: FrameBatch) -> PipelineRun:
        """Analyze a frame batch, keeping stage outputs.

        Never raises: invalid input yields a refused result and unexpected
        errors yield an ``error`` result with code PIPELINE_ERROR.
        """
        trace = StageTrace()
        try:
            return self._run(batch, trace)
        except Exception as exc:
            logger.exception("Pipeline failed")
            return self._fault_run(batch, trace, Fault("pipeline", PIPELINE_ERROR_CODE, str(exc)))

    def _run(self, batch: FrameBatch, trace: StageTrace) -> PipelineRun:
        notes = list(batch.notes)
        if batch.error:
            notes.append(f"Frame source error: {batch.error}")
        frames = batch.frames

        try:
            validate_batch(frames)
        except InvalidFrameBatchError as exc:
            logger.info("Rejecting frame batch: %s", exc.message)
            rejection = Rejected("input", INVALID_INPUT, exc.message)
            return self._finish(batch, trace, rejection, notes)

        logger.info("Analyzing %d frames from %s", len(frames), batch.provider)

        result: StageResult[Any] = self._guard("ground", self._ground_stage, frames, trace)
        if isinstance(result, Ok):
            result = self._guard("region", self._region_stage, frames, result.value, trace)
        if isinstance(result, Ok):
            result = self._guard("contact", self._signal_stage, frames, result.value, trace)
        if isinstance(result, Ok):
            result = self._guard("events", self._event_stage, result.value, trace)

        if isinstance(result, Fault):
            return self._fault_run(batch, trace, result)

        rejection = result if isinstance(result, Rejected) else None
        return self._finish(batch, trace, rejection, notes)

    @staticmethod
    def _guard(stage: str, fn: Callable[..., StageResult[Any]], *args: Any) -> StageResult[Any]:
        """Run a stage, converting unexpected exceptions into a Fault."""
        try:
            return fn(*args)
        except Exception as exc:
            logger.exception("Stage %s failed", stage)
            return Fault(stage, PIPELINE_ERROR_CODE, f"{stage} stage failed: {exc}")

    def _ground_stage(self, frames: Sequence[Frame], trace: StageTrace) -> StageResult[GroundModel]:
        ground = self._ground.detect(frames)
        trace.ground = ground
        if not ground.detected:
            reason = str(ground.diagnostics.get("reason", "undetected"))
            return Rejected("ground", "GROUND_NOT_DETECTED", reason, ground.confidence)
        return Ok(ground)

    def _region_stage(
        self,
        frames: Sequence[Frame],
        ground: GroundModel,
        trace: StageTrace,
    ) -> StageResult[ContactRegion]:
        search = self._locator.search(frames, ground)
        trace.region_search = search
        if search.region is None:
            confidence = search.candidate.confidence if search.candidate else 0.0
            return Rejected("region", "REGION_NOT_FOUND", ",".join(search.reasons), confidence)
        return Ok(search.region)

    def _signal_stage(
        self,
        frames: Sequence[Frame],
        region: ContactRegion,
        trace: StageTrace,
    ) -> StageResult[ContactSignal]:
        signal = self._signal.compute(frames, region)
        trace.signal = signal
        if signal.confidence <= 0:
            detail = signal.notes[0] if signal.notes else "no contact signal"
            return Rejected("contact", "SIGNAL_SAFEGUARDS_FAILED", detail)
        return Ok(signal)

    def _event_stage(
        self,
        signal: ContactSignal,
        trace: StageTrace,
    ) -> StageResult[EventExtraction]:
        extraction = self._extractor.extract(
            signal.states, signal.timestamps_ms, signal.smoothed_scores
        )
        trace.events = extraction
        if extraction.rejection is not None:
            return Rejected("events", extraction.rejection, str(dict(extraction.reasons)))
        if not extraction.hops:
            return Rejected(
                "events", "NO_VALID_HOPS", str(dict(extraction.reasons)), extraction.confidence
            )
        return Ok(extraction)

    @staticmethod
    def _report(
        trace: StageTrace,
        rejection: Rejected | None,
        placeholder: bool,
    ) -> ConfidenceReport:
        ground = trace.ground.confidence
        region = 0.0
        reasons: list[str] = []
        if rejection is not None:
            reasons.append(rejection.reason)
        if trace.region_search is not None:
            candidate = trace.region_search.candidate
            region = candidate.confidence if candidate is not None else 0.0
            reasons.extend(trace.region_search.reasons)
        contact = trace.signal.confidence if trace.signal is not None else 0.0
        events = trace.events.confidence if trace.events is not None else 0.0

        overall = (
            GROUND_WEIGHT * ground
            + REGION_WEIGHT * region
            + CONTACT_WEIGHT * contact
            + EVENTS_WEIGHT * events
        )
        if placeholder:
            overall = min(overall, PLACEHOLDER_CONFIDENCE_CAP)

        return ConfidenceReport(
            ground=ground,
            region=region,
            contact=contact,
            events=events,
            overall=min(1.0, max(0.0, overall)),
            rejection_reasons=tuple(dedupe(reasons)),
        )

    def _finish(
        self,
        batch: FrameBatch,
        trace: StageTrace,
        rejection: Rejected | None,
        notes: list[str],
    ) -> PipelineRun:
        placeholder = batch.measurement_status is MeasurementStatus.SYNTHETIC_PLACEHOLDER
        report = self._report(trace, rejection, placeholder)
        if rejection is not None:
            notes.append(f"{rejection.stage}: {rejection.reason} ({rejection.detail})")
        if placeholder:
            notes.append("Synthetic placeholder output (not a real measurement).")

        draft = self._build_draft(batch, trace, report, notes)
        analysis = self._gate.gate(draft)
        report = replace(report, accepted=analysis.status == "complete")
        logger.info(
            "Analysis %s (overall confidence %.3f)", analysis.status, report.overall
        )
        return PipelineRun(analysis=analysis, report=report, trace=trace)

    def _build_draft(
        self,
        batch: FrameBatch,
        trace: StageTrace,
        report: ConfidenceReport,
        notes: list[str],
    ) -> JumpAnalysis:
        signal = trace.signal
        extraction = trace.events
        hops = extraction.hops if extraction is not None else ()
        region_ok = trace.region_search is not None and trace.region_search.accepted

        frames: list[AnalysisFrame] = []
        if signal is not None:
            for frame, sample in zip(batch.frames, signal.samples):
                frames.append(
                    AnalysisFrame(
                        frame_index=frame.index,
                        t_ms=sample.timestamp_ms,
                        raw_score=sample.raw_score,
                        smoothed_score=sample.smoothed_score,
                        in_contact=sample.in_contact,
                        confidence=sample.smoothed_score,
                    )
                )

        metrics = JumpMetrics()
        events = JumpEvents()
        if extraction is not None and hops:
            summary = extraction.summary
            if summary.median_gct_ms is not None:
                metrics.gct_ms = int(round(summary.median_gct_ms))
                metrics.gct_seconds = ms_to_seconds(metrics.gct_ms)
            if summary.median_flight_ms is not None:
                metrics.flight_seconds = ms_to_seconds(summary.median_flight_ms)

            for hop in hops:
                if hop.flight_ms is None:
                    continue
                closing = next(
                    (ev for ev in extraction.landings if ev.time_ms > hop.takeoff_ms), None
                )
                if closing is not None:
                    events = JumpEvents(
                        takeoff=_event_timing(hop.takeoff), landing=_event_timing(closing)
                    )
                    break

        contact_detected = signal is not None and signal.confidence > 0 and bool(hops)
        reliability = Reliability(
            view_ok=trace.ground.detected,
            ground_detected=trace.ground.detected,
            joints_tracked=region_ok,
            contact_detected=contact_detected,
        )

        tags = ["hop-contact"]
        if batch.measurement_status is MeasurementStatus.SYNTHETIC_PLACEHOLDER:
            tags.append("synthetic")
        if hops and metrics.gct_ms is not None:
            text = f"{len(hops)} hops detected; median ground contact {metrics.gct_ms} ms."
        else:
            text = "No reliable ground contact detected."

        return JumpAnalysis(
            status="complete",
            measurement_status=batch.measurement_status.value,
            metrics=metrics,
            events=events,
            frames=frames,
            ground_summary=ground_summary(trace.ground),
            quality=Quality(
                overall_confidence=report.overall,
                notes=dedupe(notes),
                reliability=reliability,
                pipeline_debug=PipelineDebug(
                    ground_confidence=report.ground,
                    roi_confidence=report.region,
                    contact_confidence=report.contact,
                    event_confidence=report.events,
                    rejection_reasons=list(report.rejection_reasons),
                ),
            ),
            ai_summary=Summary(text=text, tags=tags),
            analysis_debug=self._debug(trace),
        )

    @staticmethod
    def _debug(trace: StageTrace) -> AnalysisDebug:
        debug = AnalysisDebug()
        search = trace.region_search
        if search is not None and search.candidate is not None:
            region = search.candidate
            debug.region = RegionDebug(
                x=region.x,
                y=region.y,
                width=region.width,
                height=region.height,
                footness=region.footness,
                stability=region.stability,
                confidence=region.confidence,
                reasons=list(search.reasons),
                feature_scores=search.features.as_dict() if search.features else {},
            )
        signal = trace.signal
        if signal is not None:
            debug.signal = SignalDebug(
                norm_method=signal.normalization.method if signal.normalization else "",
                smoothing_mode=signal.smoothing_mode,
                chatter_count=signal.chatter_count,
                enter_threshold=signal.enter_threshold,
                exit_threshold=signal.exit_threshold,
                safeguards_passed=bool(signal.safeguards and signal.safeguards.passed),
            )
        if trace.events is not None:
            debug.hops = [
                HopRecord(
                    landing_ms=h.landing_ms,
                    takeoff_ms=h.takeoff_ms,
                    gct_ms=h.gct_ms,
                    flight_ms=h.flight_ms,
                )
                for h in trace.events.hops
            ]
            debug.event_reasons = dict(trace.events.reasons)
        return debug

    def _fault_run(self, batch: FrameBatch, trace: StageTrace, fault: Fault) -> PipelineRun:
        """Error result for an unexpected internal failure."""
        analysis = JumpAnalysis(
            status="error",
            measurement_status=batch.measurement_status.value,
            ground_summary=ground_summary(trace.ground),
            quality=Quality(
                overall_confidence=0.0,
                notes=[f"{fault.stage}: {fault.message}"],
            ),
            ai_summary=Summary(text="Analysis failed.", tags=["pipeline-error"]),
            error=ErrorInfo(message=fault.message, code=fault.code),
        )
        report = ConfidenceReport(rejection_reasons=(fault.code,), accepted=False)
        return PipelineRun(analysis=analysis, report=report, trace=trace)


def analyze_frames(
    frames: Sequence[Frame],
    settings: Settings | None = None,
    measurement_status: MeasurementStatus = MeasurementStatus.REAL,
) -> JumpAnalysis:
    """Analyze frames with a one-off analyzer.

    Args:
        frames: Grayscale frames in capture order
        settings: Application settings (uses cached defaults if None)
        measurement_status: Provenance of the frames

    Returns:
        Gated JumpAnalysis
    """
    batch = FrameBatch(frames=tuple(frames), measurement_status=measurement_status)
    return HopAnalyzer(settings).analyze(batch)
