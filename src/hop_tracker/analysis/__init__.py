"""Pure analysis logic: event extraction, refinement, gating, and evaluation.

This module contains NO I/O operations and NO OpenCV imports.
All functions operate on typed dataclasses and return results.
"""

from hop_tracker.analysis.evaluation import InMemoryLabelStore, LabelStore, evaluate_events
from hop_tracker.analysis.events import EventExtraction, EventExtractor
from hop_tracker.analysis.gate import ConfidenceGate

__all__ = [
    "EventExtractor",
    "EventExtraction",
    "ConfidenceGate",
    "evaluate_events",
    "LabelStore",
    "InMemoryLabelStore",
]
