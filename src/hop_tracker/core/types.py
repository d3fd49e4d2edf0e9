"""Core data types and structures."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """A grayscale video frame with capture metadata.

    The pixel buffer is borrowed from the caller and treated as read-only.

    Attributes:
        pixels: Grayscale image, shape (height, width), dtype uint8
        timestamp_ms: Capture timestamp in milliseconds
        index: Frame sequence number
    """

    pixels: NDArray[np.uint8]
    timestamp_ms: float
    index: int

    @property
    def width(self) -> int:
        """Frame width in pixels."""
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        """Frame height in pixels."""
        return int(self.pixels.shape[0])

    @property
    def dimensions(self) -> tuple[int, int]:
        """Frame dimensions as (width, height)."""
        return self.width, self.height


class MeasurementStatus(str, Enum):
    """Whether a batch holds real video frames or generated stand-ins."""

    REAL = "real"
    SYNTHETIC_PLACEHOLDER = "synthetic_placeholder"


@dataclass(frozen=True, slots=True)
class FrameBatch:
    """Ordered frames delivered by a frame source.

    Attributes:
        frames: Frames in capture order
        measurement_status: Provenance flag, must be carried into the result
        provider: Name of the frame source that produced the batch
        notes: Free-form provider notes
        error: Provider error message, if extraction partially failed
    """

    frames: tuple[Frame, ...]
    measurement_status: MeasurementStatus = MeasurementStatus.REAL
    provider: str = "unknown"
    notes: tuple[str, ...] = ()
    error: str | None = None

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def timestamps_ms(self) -> list[float]:
        """Frame timestamps in milliseconds."""
        return [f.timestamp_ms for f in self.frames]


class GroundModelKind(str, Enum):
    """Ground model variants, valued by their serialized names."""

    UNKNOWN = "unknown"
    SCALAR = "y_scalar"
    LINEAR = "line2d"
    POLAR = "hough_polar"


@dataclass(frozen=True, slots=True)
class LineSegment:
    """A renderable line segment in pixel coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)


@dataclass(frozen=True, slots=True)
class GroundModel:
    """Estimated ground line.

    Exactly one parameterization is populated according to ``kind``:
    ``y`` for SCALAR, ``slope``/``intercept`` for LINEAR (y = slope*x + intercept),
    ``theta``/``rho`` for POLAR (rho = x*cos(theta) + y*sin(theta), theta in [0, pi)).
    """

    kind: GroundModelKind
    confidence: float = 0.0
    y: float | None = None
    slope: float | None = None
    intercept: float | None = None
    theta: float | None = None
    rho: float | None = None
    segment: LineSegment | None = None
    method: str = "none"
    diagnostics: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def unknown(
        cls,
        confidence: float = 0.0,
        diagnostics: Mapping[str, Any] | None = None,
    ) -> GroundModel:
        return cls(GroundModelKind.UNKNOWN, confidence=confidence, diagnostics=diagnostics or {})

    @classmethod
    def scalar(cls, y: float, confidence: float) -> GroundModel:
        return cls(GroundModelKind.SCALAR, confidence=confidence, y=y, method="y_scalar")

    @classmethod
    def linear(cls, slope: float, intercept: float, confidence: float) -> GroundModel:
        return cls(
            GroundModelKind.LINEAR,
            confidence=confidence,
            slope=slope,
            intercept=intercept,
            method="line2d",
        )

    @classmethod
    def polar(
        cls,
        theta: float,
        rho: float,
        confidence: float,
        segment: LineSegment | None = None,
        diagnostics: Mapping[str, Any] | None = None,
        method: str = "hough_temporal",
    ) -> GroundModel:
        return cls(
            GroundModelKind.POLAR,
            confidence=confidence,
            theta=theta,
            rho=rho,
            segment=segment,
            method=method,
            diagnostics=diagnostics or {},
        )

    @property
    def detected(self) -> bool:
        """True for any variant other than UNKNOWN."""
        return self.kind is not GroundModelKind.UNKNOWN

    def y_at(self, x: float) -> float | None:
        """Ground y coordinate at column ``x``.

        Returns:
            y in pixels, or None for UNKNOWN and for vertical polar lines
        """
        if self.kind is GroundModelKind.SCALAR and self.y is not None:
            return self.y
        if (
            self.kind is GroundModelKind.LINEAR
            and self.slope is not None
            and self.intercept is not None
        ):
            return self.slope * x + self.intercept
        if self.kind is GroundModelKind.POLAR and self.theta is not None and self.rho is not None:
            sin_t = math.sin(self.theta)
            if abs(sin_t) < 1e-6:
                return None
            return (self.rho - x * math.cos(self.theta)) / sin_t
        return None

    def signed_distance(self, x: float, y: float) -> float | None:
        """Perpendicular distance from the line, negative above the ground."""
        if self.kind is GroundModelKind.SCALAR and self.y is not None:
            return y - self.y
        if (
            self.kind is GroundModelKind.LINEAR
            and self.slope is not None
            and self.intercept is not None
        ):
            return (y - (self.slope * x + self.intercept)) / math.hypot(1.0, self.slope)
        if self.kind is GroundModelKind.POLAR and self.theta is not None and self.rho is not None:
            # sin(theta) >= 0 on [0, pi), so the normal points down the image
            return x * math.cos(self.theta) + y * math.sin(self.theta) - self.rho
        return None


@dataclass(frozen=True, slots=True)
class ContactRegion:
    """Rectangle where foot-ground contact motion is concentrated.

    Attributes:
        x: Left edge in pixels
        y: Top edge in pixels
        width: Rectangle width in pixels
        height: Rectangle height in pixels
        footness: Combined foot-likeness score [0, 1]
        stability: Fraction of frames the tracker stayed locked [0, 1]
        confidence: 0.5 * footness + 0.5 * stability
        reasons: Weakness tags (e.g. LOW_CADENCE)
    """

    x: int
    y: int
    width: int
    height: int
    footness: float
    stability: float
    confidence: float
    reasons: tuple[str, ...] = ()

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True, slots=True)
class ContactSample:
    """Contact signal values for one frame."""

    timestamp_ms: float
    raw_score: float
    smoothed_score: float
    state: int

    @property
    def in_contact(self) -> bool:
        return self.state == 1


class EventType(str, Enum):
    """Contact state transitions."""

    LANDING = "landing"
    TAKEOFF = "takeoff"


@dataclass(frozen=True, slots=True)
class ContactEvent:
    """A landing (0 -> 1) or takeoff (1 -> 0) transition.

    Attributes:
        event_type: LANDING or TAKEOFF
        frame_index: Index of the first frame in the new state
        timestamp_ms: Frame-quantized transition time
        confidence: Timing confidence [0, 1]
        refined_timestamp_ms: Sub-frame time, None when not refined
    """

    event_type: EventType
    frame_index: int
    timestamp_ms: float
    confidence: float = 1.0
    refined_timestamp_ms: float | None = None

    @property
    def time_ms(self) -> float:
        """Refined time when available, else the coarse time."""
        if self.refined_timestamp_ms is not None:
            return self.refined_timestamp_ms
        return self.timestamp_ms


@dataclass(frozen=True, slots=True)
class Hop:
    """One ground contact: a landing followed by a takeoff.

    ``flight_ms`` measures from the takeoff to the next landing in time and is
    None for the trailing hop.
    """

    landing: ContactEvent
    takeoff: ContactEvent
    flight_ms: float | None = None

    @property
    def landing_ms(self) -> float:
        return self.landing.time_ms

    @property
    def takeoff_ms(self) -> float:
        return self.takeoff.time_ms

    @property
    def gct_ms(self) -> float:
        """Ground contact time in milliseconds."""
        return self.takeoff.time_ms - self.landing.time_ms


@dataclass(frozen=True, slots=True)
class ConfidenceReport:
    """Per-stage confidences and the final accept/reject decision."""

    ground: float = 0.0
    region: float = 0.0
    contact: float = 0.0
    events: float = 0.0
    overall: float = 0.0
    rejection_reasons: tuple[str, ...] = ()
    accepted: bool = False

    def as_dict(self) -> dict[str, float]:
        """Stage confidences keyed by stage name."""
        return {
            "ground": self.ground,
            "region": self.region,
            "contact": self.contact,
            "events": self.events,
            "overall": self.overall,
        }
