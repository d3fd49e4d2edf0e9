"""Tagged per-stage results used to compose the pipeline.

A stage either produced a value (``Ok``), declined on the evidence
(``Rejected``), or hit an unexpected internal error (``Fault``). Only ``Ok``
lets the data flow on to the next stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Stage output."""

    value: T


@dataclass(frozen=True, slots=True)
class Rejected:
    """The stage ran but the evidence was insufficient.

    Attributes:
        stage: Stage name
        reason: Machine-readable reason code
        detail: Human-readable explanation
        confidence: Sub-threshold confidence the stage reached
    """

    stage: str
    reason: str
    detail: str = ""
    confidence: float = 0.0


@dataclass(frozen=True, slots=True)
class Fault:
    """The stage raised; converted at the pipeline boundary."""

    stage: str
    code: str
    message: str


StageResult = Union[Ok[T], Rejected, Fault]
