"""Frame-level vision stages: ground line, contact region, contact signal."""

from hop_tracker.vision.ground import GroundHistory, GroundLineDetector, update_ground_history
from hop_tracker.vision.region import ContactRegionLocator, RegionSearch
from hop_tracker.vision.signal import ContactSignal, ContactSignalComputer

__all__ = [
    "GroundLineDetector",
    "GroundHistory",
    "update_ground_history",
    "ContactRegionLocator",
    "RegionSearch",
    "ContactSignalComputer",
    "ContactSignal",
]
