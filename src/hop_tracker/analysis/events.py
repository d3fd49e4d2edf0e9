"""Landing/takeoff extraction and hop pairing.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from hop_tracker.analysis.metrics import HopSummary, summarize_hops
from hop_tracker.analysis.refinement import RefinementMethod, refine_edge
from hop_tracker.core.config import EventExtractionSettings
from hop_tracker.core.exceptions import HopOrderError
from hop_tracker.core.logging import get_logger
from hop_tracker.core.types import ContactEvent, EventType, Hop

logger = get_logger(__name__)

INPUT_REJECTION = "INPUT"
INVALID_HOP_ORDER = "INVALID_HOP_ORDER"


@dataclass(frozen=True, slots=True)
class EventExtraction:
    """Events, hops, and diagnostics for one contact state sequence.

    Attributes:
        landings: Landing events in time order
        takeoffs: Takeoff events in time order
        hops: Accepted hops in time order
        summary: Median/p95 timing over accepted hops
        confidence: Extraction confidence [0, 1]
        reasons: Counts of pairing and plausibility rejections
        rejected_count: Hops dropped by plausibility bounds
        rejection: Rejection code when the whole result was voided
    """

    landings: tuple[ContactEvent, ...] = ()
    takeoffs: tuple[ContactEvent, ...] = ()
    hops: tuple[Hop, ...] = ()
    summary: HopSummary = field(default_factory=HopSummary)
    confidence: float = 0.0
    reasons: Mapping[str, int] = field(default_factory=dict)
    rejected_count: int = 0
    rejection: str | None = None

    @property
    def events(self) -> list[ContactEvent]:
        """All events merged in time order."""
        return sorted(self.landings + self.takeoffs, key=lambda e: (e.time_ms, e.frame_index))


def validate_hop_order(hops: Sequence[Hop]) -> None:
    """Check that every hop lands before it takes off.

    Raises:
        HopOrderError: If any hop violates the ordering
    """
    for hop in hops:
        if not hop.landing_ms < hop.takeoff_ms:
            raise HopOrderError(
                f"Hop landing at {hop.landing_ms:.1f} ms is not before takeoff "
                f"at {hop.takeoff_ms:.1f} ms"
            )


def extraction_confidence(hop_count: int, rejected_count: int, transitions: int) -> float:
    """Mean of hop-count saturation, plausibility pass rate, and hops per transition."""
    if hop_count == 0:
        return 0.0
    count_score = min(1.0, hop_count / 3.0)
    pass_rate = hop_count / (hop_count + rejected_count)
    transition_score = min(1.0, hop_count / transitions) if transitions > 0 else 0.0
    return (count_score + pass_rate + transition_score) / 3.0


class EventExtractor:
    """Turns a binary contact state sequence into landings, takeoffs, and hops."""

    def __init__(self, settings: EventExtractionSettings | None = None) -> None:
        """Initialize extractor with settings.

        Args:
            settings: Pairing bounds and refinement options (uses defaults if None)
        """
        self.settings = settings or EventExtractionSettings()

    def extract(
        self,
        states: Sequence[int],
        timestamps_ms: Sequence[float],
        smoothed: Sequence[float] | None = None,
    ) -> EventExtraction:
        """Extract events and hops.

        Args:
            states: Per-frame contact state (0 = flight, 1 = contact)
            timestamps_ms: Per-frame timestamps, same length as states
            smoothed: Optional smoothed scores for sub-frame refinement

        Returns:
            EventExtraction; empty with a rejection code on invalid input
        """
        if len(states) != len(timestamps_ms):
            logger.info(
                "State/timestamp length mismatch: %d vs %d", len(states), len(timestamps_ms)
            )
            return EventExtraction(
                reasons={"state_timestamp_mismatch": 1}, rejection=INPUT_REJECTION
            )

        if smoothed is not None and len(smoothed) != len(states):
            smoothed = None

        landings, takeoffs = self._find_events(states, timestamps_ms, smoothed)
        reasons: Counter[str] = Counter()
        paired = self._pair(landings, takeoffs, reasons)
        with_flight = self._attach_flight(paired, landings)
        accepted, rejected_count = self._apply_bounds(with_flight, reasons)

        try:
            validate_hop_order(accepted)
        except HopOrderError as exc:
            logger.error("Discarding events: %s", exc)
            reasons[INVALID_HOP_ORDER.lower()] += 1
            return EventExtraction(
                landings=tuple(landings),
                takeoffs=tuple(takeoffs),
                reasons=dict(reasons),
                rejected_count=rejected_count,
                rejection=INVALID_HOP_ORDER,
            )

        summary = summarize_hops(
            [h.gct_ms for h in accepted],
            [h.flight_ms for h in accepted if h.flight_ms is not None],
        )
        confidence = extraction_confidence(
            len(accepted), rejected_count, len(landings) + len(takeoffs)
        )
        logger.debug(
            "Extracted %d landings, %d takeoffs, %d hops (confidence %.3f)",
            len(landings),
            len(takeoffs),
            len(accepted),
            confidence,
        )
        return EventExtraction(
            landings=tuple(landings),
            takeoffs=tuple(takeoffs),
            hops=tuple(accepted),
            summary=summary,
            confidence=confidence,
            reasons=dict(reasons),
            rejected_count=rejected_count,
        )

    def _find_events(
        self,
        states: Sequence[int],
        timestamps_ms: Sequence[float],
        smoothed: Sequence[float] | None,
    ) -> tuple[list[ContactEvent], list[ContactEvent]]:
        method = RefinementMethod(self.settings.refinement_method)
        landings: list[ContactEvent] = []
        takeoffs: list[ContactEvent] = []

        for i in range(1, len(states)):
            if states[i] == states[i - 1]:
                continue
            rising = states[i] == 1
            event_type = EventType.LANDING if rising else EventType.TAKEOFF

            if smoothed is not None and method is not RefinementMethod.NONE:
                edge = refine_edge(
                    smoothed,
                    timestamps_ms,
                    i,
                    rising,
                    method,
                    self.settings.refinement_window_frames,
                )
                event = ContactEvent(
                    event_type,
                    frame_index=i,
                    timestamp_ms=float(timestamps_ms[i]),
                    confidence=edge.confidence,
                    refined_timestamp_ms=edge.time_ms,
                )
            else:
                event = ContactEvent(event_type, frame_index=i, timestamp_ms=float(timestamps_ms[i]))

            (landings if rising else takeoffs).append(event)

        return landings, takeoffs

    def _pair(
        self,
        landings: Sequence[ContactEvent],
        takeoffs: Sequence[ContactEvent],
        reasons: Counter[str],
    ) -> list[tuple[ContactEvent, ContactEvent]]:
        """Greedy time-ordered landing/takeoff pairing."""
        if not landings or not takeoffs:
            reasons["no_events"] += 1
            return []

        min_interval = self.settings.min_interval_ms
        pairs: list[tuple[ContactEvent, ContactEvent]] = []
        li = ti = 0
        last_event_ms = float("-inf")

        while li < len(landings) and ti < len(takeoffs):
            landing = landings[li]
            takeoff = takeoffs[ti]

            if landing.time_ms < last_event_ms + min_interval:
                reasons["landing_too_close"] += 1
                li += 1
            elif takeoff.time_ms > landing.time_ms and (
                takeoff.time_ms >= last_event_ms + min_interval
            ):
                pairs.append((landing, takeoff))
                last_event_ms = takeoff.time_ms
                li += 1
                ti += 1
            elif takeoff.time_ms <= landing.time_ms:
                reasons["takeoff_before_landing"] += 1
                ti += 1
            else:
                reasons["takeoff_too_close"] += 1
                ti += 1

        return pairs

    @staticmethod
    def _attach_flight(
        pairs: Sequence[tuple[ContactEvent, ContactEvent]],
        landings: Sequence[ContactEvent],
    ) -> list[Hop]:
        """Flight runs from each takeoff to the next landing strictly after it."""
        hops = []
        for landing, takeoff in pairs:
            next_landing = next((ev for ev in landings if ev.time_ms > takeoff.time_ms), None)
            flight = next_landing.time_ms - takeoff.time_ms if next_landing is not None else None
            hops.append(Hop(landing=landing, takeoff=takeoff, flight_ms=flight))
        return hops

    def _apply_bounds(self, hops: Sequence[Hop], reasons: Counter[str]) -> tuple[list[Hop], int]:
        s = self.settings
        accepted: list[Hop] = []
        rejected = 0
        for hop in hops:
            reason = None
            if hop.gct_ms < s.min_gct_ms:
                reason = "gct_too_short"
            elif hop.gct_ms > s.max_gct_ms:
                reason = "gct_too_long"
            elif hop.flight_ms is not None and hop.flight_ms < s.min_flight_ms:
                reason = "flight_too_short"
            elif hop.flight_ms is not None and hop.flight_ms > s.max_flight_ms:
                reason = "flight_too_long"

            if reason is None:
                accepted.append(hop)
            else:
                reasons[reason] += 1
                rejected += 1
        return accepted, rejected
