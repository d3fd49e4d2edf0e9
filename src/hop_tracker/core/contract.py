"""Result contract returned to callers.

Field names serialize to camelCase (``model_dump(by_alias=True)``) and are
stable across releases; consumers depend on their null semantics.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CONTRACT_VERSION = "0.2.0"

AnalysisStatus = Literal["pending", "complete", "error"]
MeasurementStatusName = Literal["real", "synthetic_placeholder"]
GroundSummaryType = Literal["unknown", "y_scalar", "line2d", "hough_polar"]


class ContractModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventTiming(ContractModel):
    """Time (seconds), frame index, and confidence of one event."""

    t: float | None = None
    frame: int | None = None
    confidence: float = 0.0


class FootAngle(ContractModel):
    """Contact-patch angle at takeoff and landing, in degrees."""

    takeoff: float | None = None
    landing: float | None = None
    confidence: float = 0.0


class JumpMetrics(ContractModel):
    gct_seconds: float | None = None
    gct_ms: int | None = None
    flight_seconds: float | None = None
    foot_angle_deg: FootAngle = Field(default_factory=FootAngle)
    gct_seconds_left: float | None = None
    gct_seconds_right: float | None = None
    gct_ms_left: int | None = None
    gct_ms_right: int | None = None


class JumpEvents(ContractModel):
    takeoff: EventTiming = Field(default_factory=EventTiming)
    landing: EventTiming = Field(default_factory=EventTiming)


class AnalysisFrame(ContractModel):
    """Dense per-frame contact evidence."""

    frame_index: int
    t_ms: float | None = None
    raw_score: float = 0.0
    smoothed_score: float = 0.0
    in_contact: bool = False
    confidence: float = 0.0


class GroundSummary(ContractModel):
    """Clip-level ground model; only the fields of ``type`` are populated."""

    type: GroundSummaryType = "unknown"
    confidence: float = 0.0
    y: float | None = None
    a: float | None = None
    b: float | None = None
    theta: float | None = None
    rho: float | None = None
    line: tuple[float, float, float, float] | None = None


class Reliability(ContractModel):
    view_ok: bool = False
    ground_detected: bool = False
    joints_tracked: bool = False
    contact_detected: bool = False


class PipelineDebug(ContractModel):
    """Per-stage confidences and rejection codes."""

    ground_confidence: float = 0.0
    roi_confidence: float = 0.0
    contact_confidence: float = 0.0
    event_confidence: float = 0.0
    rejection_reasons: list[str] = Field(default_factory=list)


class Quality(ContractModel):
    overall_confidence: float = 0.0
    notes: list[str] = Field(default_factory=list)
    reliability: Reliability = Field(default_factory=Reliability)
    pipeline_debug: PipelineDebug = Field(default_factory=PipelineDebug)


class Summary(ContractModel):
    text: str = ""
    tags: list[str] = Field(default_factory=list)


class ErrorInfo(ContractModel):
    message: str
    code: str | None = None


class RegionDebug(ContractModel):
    """Contact region geometry and feature scores for overlays."""

    x: int
    y: int
    width: int
    height: int
    footness: float
    stability: float
    confidence: float
    reasons: list[str] = Field(default_factory=list)
    feature_scores: dict[str, float] = Field(default_factory=dict)


class SignalDebug(ContractModel):
    norm_method: str
    smoothing_mode: str
    chatter_count: int
    enter_threshold: float
    exit_threshold: float
    safeguards_passed: bool


class HopRecord(ContractModel):
    landing_ms: float
    takeoff_ms: float
    gct_ms: float
    flight_ms: float | None = None


class AnalysisDebug(ContractModel):
    region: RegionDebug | None = None
    signal: SignalDebug | None = None
    hops: list[HopRecord] = Field(default_factory=list)
    event_reasons: dict[str, int] = Field(default_factory=dict)


class JumpAnalysis(ContractModel):
    """Complete analysis result.

    Attributes:
        version: Contract version
        status: pending until analyzed; error when refused or failed
        measurement_status: Provenance of the analyzed frames
        metrics: Reported timings, null when redacted
        events: Representative takeoff and the landing that ends its flight
        frames: Per-frame diagnostic samples
        ground_summary: Ground model used for the analysis
        quality: Confidence, notes, reliability flags, per-stage debug
        ai_summary: Short text summary and tags
        error: Set when status is error
        analysis_debug: Region, signal, and hop diagnostics
    """

    version: Literal["0.2.0"] = CONTRACT_VERSION
    status: AnalysisStatus = "pending"
    measurement_status: MeasurementStatusName = "synthetic_placeholder"
    metrics: JumpMetrics = Field(default_factory=JumpMetrics)
    events: JumpEvents = Field(default_factory=JumpEvents)
    frames: list[AnalysisFrame] = Field(default_factory=list)
    ground_summary: GroundSummary = Field(default_factory=GroundSummary)
    quality: Quality = Field(default_factory=Quality)
    ai_summary: Summary = Field(default_factory=Summary)
    error: ErrorInfo | None = None
    analysis_debug: AnalysisDebug | None = None

    def to_payload(self) -> dict[str, object]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


def empty_analysis() -> JumpAnalysis:
    """Pending result with every metric and event null."""
    return JumpAnalysis()
