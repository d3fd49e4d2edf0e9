"""Pipeline orchestration."""

from hop_tracker.pipeline.processor import HopAnalyzer, PipelineRun, analyze_frames

__all__ = ["HopAnalyzer", "PipelineRun", "analyze_frames"]
