"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GroundDetectionSettings(BaseSettings):
    """Ground line detection (Sobel + polar Hough + temporal clustering)."""

    model_config = SettingsConfigDict(env_prefix="GROUND_")

    edge_std_factor: float = 1.5
    theta_steps: int = Field(default=180, gt=0)
    rho_resolution_px: float = Field(default=2.0, gt=0)
    top_k: int = Field(default=10, gt=0)
    cluster_theta_deg: float = 15.0
    cluster_rho_px: float = 20.0
    min_confidence: float = 0.3
    history_size: int = Field(default=8, gt=0)


class ContactRegionSettings(BaseSettings):
    """Contact region search and tracking parameters."""

    model_config = SettingsConfigDict(env_prefix="REGION_")

    band_height_px: int = Field(default=40, gt=0)
    roi_width: int = Field(default=32, gt=0)
    roi_height: int = Field(default=24, gt=0)
    stride: int = Field(default=2, gt=0)
    window_frames: int = Field(default=90, gt=1)
    track_max_shift_px: int = Field(default=6, ge=0)
    min_confidence: float = 0.35


class ContactSignalSettings(BaseSettings):
    """Contact signal normalization, smoothing, and hysteresis."""

    model_config = SettingsConfigDict(env_prefix="SIGNAL_")

    ema_alpha: float = Field(default=0.2, gt=0, le=1)
    smoothing_mode: Literal["causal", "zero_phase"] = "causal"
    norm_method: Literal["median_mad", "percentile"] = "median_mad"
    enter_threshold: float = 0.3
    exit_threshold: float = 0.15
    min_state_frames: int = Field(default=2, ge=1)
    min_dynamic_range: float = 0.1
    min_frames_above_enter: int = 2
    min_frames_below_exit: int = 2


class EventExtractionSettings(BaseSettings):
    """Event pairing bounds and edge refinement."""

    model_config = SettingsConfigDict(env_prefix="EVENTS_")

    min_gct_ms: float = 50.0
    max_gct_ms: float = 450.0
    min_flight_ms: float = 100.0
    max_flight_ms: float = 900.0
    min_interval_ms: float = 50.0
    refinement_method: Literal["max_derivative", "level_crossing", "none"] = "max_derivative"
    refinement_window_frames: int = Field(default=3, ge=1)


class ConfidenceGateSettings(BaseSettings):
    """Thresholds and requirements for reporting metrics."""

    model_config = SettingsConfigDict(env_prefix="GATE_")

    min_overall_confidence: float = 0.6
    min_overall_confidence_events_only: float = 0.75
    require_view_ok: bool = True
    require_joints_tracked: bool = True
    require_contact_detected: bool = True
    require_ground_detected: bool = False
    require_frames_or_events: bool = True
    max_gct_seconds: float = 0.45
    max_flight_seconds: float = 0.9
    gct_ms_tolerance: float = 35.0
    min_gct_confidence: float = 0.65
    min_flight_confidence: float = 0.65
    min_events_confidence: float = 0.7
    min_foot_angle_confidence: float = 0.7
    allow_partial_metrics: bool = True
    keep_frames_on_failure: bool = True
    max_frames_on_failure: int = Field(default=12, ge=0)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    file: str | None = None


class Settings(BaseSettings):
    """Root settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ground: GroundDetectionSettings = Field(default_factory=GroundDetectionSettings)
    region: ContactRegionSettings = Field(default_factory=ContactRegionSettings)
    signal: ContactSignalSettings = Field(default_factory=ContactSignalSettings)
    events: EventExtractionSettings = Field(default_factory=EventExtractionSettings)
    gate: ConfidenceGateSettings = Field(default_factory=ConfidenceGateSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings instance."""
    return Settings()
