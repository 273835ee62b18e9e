"""
Analysis data models.

Outputs of the frequency aggregator and the correlator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .parsed_event import ErrorSignature, ParsedEvent


class Trend(Enum):
    """Frequency classification of an error signature."""
    SPIKE = "spike"          # Latest window far above the historical mean
    NEW = "new"              # Not enough history to compute a baseline
    STEADY = "steady"
    DECLINING = "declining"  # Latest window well below the mean, or silent


@dataclass
class FrequencyBucket:
    """Count of one signature inside one time window."""

    signature: ErrorSignature
    window_start: datetime
    count: int
    first_seen: datetime
    last_seen: datetime
    complete: bool = True


@dataclass(frozen=True)
class SignatureStats:
    """Per-signature summary derived from the buckets."""

    signature: ErrorSignature
    total_count: int
    latest_count: int               # Count in the evaluated (latest) window
    history_windows: int
    baseline_mean: float
    trend: Trend
    first_seen: datetime
    last_seen: datetime


class CorrelationReason(Enum):
    """Which correlator pass produced a group."""
    CORRELATION_ID = "correlation_id"
    TIME_PROXIMITY = "time_proximity"
    SINGLETON = "singleton"


LIKELY_RELATED = "likely related"


@dataclass(frozen=True)
class CorrelationGroup:
    """
    Events believed to stem from one underlying incident.

    The trigger is the earliest event. Cascades are later events of a
    different kind; same-kind repeats are kept as duplicates. The grouping is
    heuristic (time and kind adjacency), hence the "likely related" label.
    """

    events: Tuple[ParsedEvent, ...]
    trigger: ParsedEvent
    reason: CorrelationReason
    cascades: Tuple[ParsedEvent, ...] = ()
    duplicates: Tuple[ParsedEvent, ...] = ()
    correlation_id: Optional[str] = None
    label: str = field(default=LIKELY_RELATED)

    @property
    def size(self) -> int:
        return len(self.events)

    @property
    def is_singleton(self) -> bool:
        return len(self.events) == 1

    @property
    def started_at(self) -> datetime:
        return self.trigger.timestamp

    @property
    def ended_at(self) -> datetime:
        return self.events[-1].timestamp
