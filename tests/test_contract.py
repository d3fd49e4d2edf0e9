"""Tests for the result contract and settings."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from hop_tracker.core.config import (
    ContactSignalSettings,
    GroundDetectionSettings,
    LoggingSettings,
    get_settings,
)
from hop_tracker.core.contract import CONTRACT_VERSION, JumpMetrics, empty_analysis
from hop_tracker.core.logging import NAMESPACE, get_logger, setup_logging


class TestContract:
    """Tests for contract serialization."""

    def test_empty_analysis(self) -> None:
        """A fresh result is pending with nothing reported."""
        payload = empty_analysis().to_payload()

        assert payload["version"] == CONTRACT_VERSION
        assert payload["status"] == "pending"
        assert payload["measurementStatus"] == "synthetic_placeholder"
        assert payload["metrics"]["gctMs"] is None
        assert payload["error"] is None

    def test_keys_are_camel_case(self) -> None:
        """Serialized keys use camelCase throughout."""
        payload = empty_analysis().to_payload()

        assert {"groundSummary", "aiSummary", "analysisDebug", "measurementStatus"} <= set(payload)
        assert "footAngleDeg" in payload["metrics"]
        assert "overallConfidence" in payload["quality"]
        assert "pipelineDebug" in payload["quality"]

    def test_accepts_both_names(self) -> None:
        """Models validate from field names and from aliases."""
        assert JumpMetrics.model_validate({"gctMs": 250}).gct_ms == 250
        assert JumpMetrics(gct_ms=250).gct_ms == 250


class TestSettings:
    """Tests for configuration loading."""

    def test_defaults(self) -> None:
        """Defaults match the documented values."""
        settings = ContactSignalSettings()

        assert settings.ema_alpha == 0.2
        assert settings.enter_threshold == 0.3
        assert settings.exit_threshold == 0.15
        assert settings.norm_method == "median_mad"

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Each section reads its own environment prefix."""
        monkeypatch.setenv("SIGNAL_EMA_ALPHA", "0.5")
        monkeypatch.setenv("GROUND_TOP_K", "4")

        assert ContactSignalSettings().ema_alpha == 0.5
        assert GroundDetectionSettings().top_k == 4

    def test_invalid_value_is_rejected(self) -> None:
        """Out-of-range values fail validation."""
        with pytest.raises(ValueError):
            ContactSignalSettings(ema_alpha=0.0)

    def test_settings_are_cached(self) -> None:
        """get_settings returns one shared instance."""
        assert get_settings() is get_settings()


class TestLogging:
    """Tests for logging setup."""

    def test_loggers_share_the_namespace(self) -> None:
        """Module loggers nest under the package logger."""
        assert get_logger("vision.ground").name == f"{NAMESPACE}.vision.ground"
        assert get_logger(f"{NAMESPACE}.pipeline").name == f"{NAMESPACE}.pipeline"

    def test_setup_is_repeatable(self, tmp_path: Path) -> None:
        """Repeated setup replaces its own handlers instead of stacking them."""
        log_file = tmp_path / "logs" / "hop.log"
        settings = LoggingSettings(level="DEBUG", file=str(log_file))

        setup_logging(settings=settings)
        package_logger = setup_logging(settings=settings)

        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 2
        assert log_file.parent.is_dir()

        setup_logging("WARNING")
        assert package_logger.level == logging.WARNING
        assert len(package_logger.handlers) == 1

        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        package_logger.setLevel(logging.NOTSET)
