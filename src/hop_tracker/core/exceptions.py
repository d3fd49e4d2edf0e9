"""Custom exceptions for Hop Tracker.

Detection failures (no ground, no region, no hops) are reported as values by
the stages. Exceptions are reserved for broken inputs at the edges of the
package and for internal invariant violations.
"""


class HopTrackerError(Exception):
    """Base exception for all Hop Tracker errors."""

    pass


class FrameSourceError(HopTrackerError):
    """A frame source could not deliver frames."""

    def __init__(self, message: str = "Frame source failed") -> None:
        self.message = message
        super().__init__(self.message)


class InvalidFrameBatchError(HopTrackerError):
    """Frames in a batch are malformed or out of order."""

    def __init__(self, message: str = "Invalid frame batch") -> None:
        self.message = message
        super().__init__(self.message)


class HopOrderError(HopTrackerError):
    """An accepted hop does not have its landing before its takeoff."""

    def __init__(self, message: str = "Hop landing must precede takeoff") -> None:
        self.message = message
        super().__init__(self.message)


class LabelStoreError(HopTrackerError):
    """Reading or writing ground-truth labels failed."""

    def __init__(self, message: str = "Label store error") -> None:
        self.message = message
        super().__init__(self.message)
