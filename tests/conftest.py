"""Pytest fixtures for Hop Tracker tests."""

from __future__ import annotations

import math

import numpy as np
import pytest

from hop_tracker.core.config import (
    ConfidenceGateSettings,
    ContactRegionSettings,
    ContactSignalSettings,
    EventExtractionSettings,
    GroundDetectionSettings,
)
from hop_tracker.core.contract import (
    AnalysisFrame,
    EventTiming,
    JumpAnalysis,
    JumpEvents,
    JumpMetrics,
    Quality,
    Reliability,
)
from hop_tracker.core.types import Frame, FrameBatch, MeasurementStatus

WIDTH = 160
HEIGHT = 120
GROUND_Y = 80
SKY = 170
FLOOR = 60
FRAME_MS = 1000.0 / 30.0

FOOT_X0, FOOT_X1 = 70, 90
FOOT_HEIGHT = 14


def floor_image(ground_y: int = GROUND_Y, slope: float = 0.0) -> np.ndarray:
    """Bright background above a dark floor; the boundary is y = slope*x + ground_y."""
    image = np.full((HEIGHT, WIDTH), SKY, dtype=np.uint8)
    rows = np.arange(HEIGHT)[:, np.newaxis]
    cols = np.arange(WIDTH)[np.newaxis, :]
    image[rows >= slope * (cols - WIDTH / 2) + ground_y] = FLOOR
    return image


def make_frames(images: list[np.ndarray], frame_ms: float = FRAME_MS) -> list[Frame]:
    return [Frame(pixels=img, timestamp_ms=i * frame_ms, index=i) for i, img in enumerate(images)]


def hop_images(
    cycles: int = 4,
    contact_frames: int = 6,
    flight_frames: int = 8,
    lead_in: int = 3,
) -> list[np.ndarray]:
    """Floor frames with a foot block that rests and wobbles on the ground
    during contact and is lifted well above the ground during flight."""
    images = []

    def flight() -> np.ndarray:
        img = floor_image()
        img[:8, FOOT_X0:FOOT_X1] = 240
        return img

    for _ in range(lead_in):
        images.append(flight())
    for _ in range(cycles):
        for k in range(contact_frames):
            img = floor_image()
            img[GROUND_Y - FOOT_HEIGHT : GROUND_Y, FOOT_X0:FOOT_X1] = 250 if k % 2 else 215
            images.append(img)
        for _ in range(flight_frames):
            images.append(flight())
    return images


@pytest.fixture
def ground_settings() -> GroundDetectionSettings:
    return GroundDetectionSettings()


@pytest.fixture
def region_settings() -> ContactRegionSettings:
    return ContactRegionSettings()


@pytest.fixture
def signal_settings() -> ContactSignalSettings:
    """Percentile normalization without smoothing, for exact state checks."""
    return ContactSignalSettings(norm_method="percentile", ema_alpha=1.0)


@pytest.fixture
def event_settings() -> EventExtractionSettings:
    return EventExtractionSettings()


@pytest.fixture
def gate_settings() -> ConfidenceGateSettings:
    return ConfidenceGateSettings()


@pytest.fixture
def floor_frames() -> list[Frame]:
    """Twenty identical frames with a horizontal floor edge at GROUND_Y."""
    return make_frames([floor_image() for _ in range(20)])


@pytest.fixture
def tilted_floor_frames() -> list[Frame]:
    """Twenty frames with a floor edge tilted by ~14 degrees."""
    return make_frames([floor_image(slope=0.25) for _ in range(20)])


@pytest.fixture
def flat_frames() -> list[Frame]:
    """Uniform gray frames: no edges and no motion."""
    return make_frames([np.full((HEIGHT, WIDTH), 128, dtype=np.uint8) for _ in range(20)])


@pytest.fixture
def hop_frames() -> list[Frame]:
    return make_frames(hop_images())


@pytest.fixture
def hop_batch(hop_frames: list[Frame]) -> FrameBatch:
    return FrameBatch(frames=tuple(hop_frames), provider="synthetic-test")


@pytest.fixture
def placeholder_batch(hop_frames: list[Frame]) -> FrameBatch:
    return FrameBatch(
        frames=tuple(hop_frames),
        measurement_status=MeasurementStatus.SYNTHETIC_PLACEHOLDER,
        provider="placeholder",
    )


@pytest.fixture
def draft_analysis() -> JumpAnalysis:
    """A complete, confident draft that passes every gate check."""
    frames = [
        AnalysisFrame(
            frame_index=i,
            t_ms=i * 100.0,
            raw_score=1.0,
            smoothed_score=0.5,
            in_contact=i % 2 == 0,
            confidence=0.5,
        )
        for i in range(20)
    ]
    return JumpAnalysis(
        status="complete",
        measurement_status="real",
        metrics=JumpMetrics(gct_seconds=0.25, gct_ms=250, flight_seconds=0.4),
        events=JumpEvents(
            takeoff=EventTiming(t=0.5, frame=5, confidence=0.9),
            landing=EventTiming(t=0.9, frame=9, confidence=0.9),
        ),
        frames=frames,
        quality=Quality(
            overall_confidence=0.8,
            notes=["pipeline note"],
            reliability=Reliability(
                view_ok=True,
                ground_detected=True,
                joints_tracked=True,
                contact_detected=True,
            ),
        ),
    )


def ground_y_at_center(theta: float, rho: float) -> float:
    return (rho - (WIDTH / 2) * math.cos(theta)) / math.sin(theta)
