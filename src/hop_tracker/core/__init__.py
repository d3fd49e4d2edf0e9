"""Core infrastructure: config, types, result contract, exceptions, and logging."""

from hop_tracker.core.config import Settings, get_settings
from hop_tracker.core.contract import JumpAnalysis, empty_analysis
from hop_tracker.core.exceptions import (
    FrameSourceError,
    HopOrderError,
    HopTrackerError,
    InvalidFrameBatchError,
    LabelStoreError,
)
from hop_tracker.core.logging import get_logger, setup_logging
from hop_tracker.core.result import Fault, Ok, Rejected, StageResult
from hop_tracker.core.types import (
    ConfidenceReport,
    ContactEvent,
    ContactRegion,
    ContactSample,
    EventType,
    Frame,
    FrameBatch,
    GroundModel,
    GroundModelKind,
    Hop,
    LineSegment,
    MeasurementStatus,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "Frame",
    "FrameBatch",
    "MeasurementStatus",
    "GroundModel",
    "GroundModelKind",
    "LineSegment",
    "ContactRegion",
    "ContactSample",
    "ContactEvent",
    "EventType",
    "Hop",
    "ConfidenceReport",
    # Results
    "Ok",
    "Rejected",
    "Fault",
    "StageResult",
    "JumpAnalysis",
    "empty_analysis",
    # Exceptions
    "HopTrackerError",
    "FrameSourceError",
    "InvalidFrameBatchError",
    "HopOrderError",
    "LabelStoreError",
    # Logging
    "setup_logging",
    "get_logger",
]
