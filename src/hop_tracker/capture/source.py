"""Frame source interface and frame preparation helpers.

Decoding video is left to frame source implementations; this module only
defines what they deliver and how raw images become pipeline frames.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import cv2
import numpy as np
from numpy.typing import NDArray

from hop_tracker.core.exceptions import FrameSourceError
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import Frame, FrameBatch, MeasurementStatus

logger = get_logger(__name__)

DEFAULT_MAX_WIDTH = 256


@runtime_checkable
class FrameSource(Protocol):
    """Anything that can sample grayscale frames from a video."""

    def sample_frames(
        self,
        video_uri: str,
        timestamps_ms: Sequence[float],
        max_width: int = DEFAULT_MAX_WIDTH,
    ) -> FrameBatch:
        """Sample frames at the requested timestamps.

        Raises:
            FrameSourceError: If no frames can be delivered at all
        """
        ...


def even_timestamps(duration_ms: float, count: int) -> list[float]:
    """``count`` evenly spaced timestamps covering [0, duration_ms)."""
    if count <= 0 or duration_ms <= 0:
        return []
    step = duration_ms / count
    return [i * step for i in range(count)]


def to_gray_frame(
    image: NDArray[np.uint8],
    timestamp_ms: float,
    index: int,
    max_width: int = DEFAULT_MAX_WIDTH,
) -> Frame:
    """Convert a decoded image to a grayscale Frame no wider than ``max_width``.

    Args:
        image: Gray (H, W), BGR (H, W, 3) or BGRA (H, W, 4) uint8 image
        timestamp_ms: Capture time in milliseconds
        index: Frame sequence number
        max_width: Downscale target width; aspect ratio is preserved

    Raises:
        FrameSourceError: If the image shape is not supported
    """
    if image.ndim == 3 and image.shape[2] == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    elif image.ndim == 3 and image.shape[2] == 4:
        gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.ndim == 2:
        gray = image
    else:
        raise FrameSourceError(f"Unsupported image shape {image.shape}")

    if gray.dtype != np.uint8:
        raise FrameSourceError(f"Unsupported image dtype {gray.dtype}")

    height, width = gray.shape[:2]
    if max_width > 0 and width > max_width:
        new_height = max(1, round(height * max_width / width))
        gray = cv2.resize(gray, (max_width, new_height), interpolation=cv2.INTER_AREA)

    return Frame(pixels=np.ascontiguousarray(gray), timestamp_ms=float(timestamp_ms), index=index)


def batch_from_images(
    images: Sequence[NDArray[np.uint8]],
    timestamps_ms: Sequence[float],
    max_width: int = DEFAULT_MAX_WIDTH,
    measurement_status: MeasurementStatus = MeasurementStatus.REAL,
    provider: str = "arrays",
) -> FrameBatch:
    """Build a FrameBatch from decoded images and their timestamps.

    Raises:
        FrameSourceError: If images and timestamps differ in length
    """
    if len(images) != len(timestamps_ms):
        raise FrameSourceError(
            f"Got {len(images)} images but {len(timestamps_ms)} timestamps"
        )
    frames = tuple(
        to_gray_frame(image, t, i, max_width)
        for i, (image, t) in enumerate(zip(images, timestamps_ms))
    )
    logger.debug("Prepared %d frames from %s", len(frames), provider)
    return FrameBatch(frames=frames, measurement_status=measurement_status, provider=provider)
