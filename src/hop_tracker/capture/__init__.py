"""Frame acquisition interface."""

from hop_tracker.capture.source import (
    FrameSource,
    batch_from_images,
    even_timestamps,
    to_gray_frame,
)

__all__ = ["FrameSource", "batch_from_images", "even_timestamps", "to_gray_frame"]
