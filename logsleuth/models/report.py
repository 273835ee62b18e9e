"""
Report data model.

The structured result of one analysis run. Rendering (tables, JSON) happens
outside of this model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class FileStatus(Enum):
    """Outcome of processing one input file."""
    OK = "ok"
    FAILED = "failed"


@dataclass
class FileOutcome:
    """Per-file read result, including the budget that was applied."""

    path: str
    status: FileStatus = FileStatus.OK
    error: Optional[str] = None
    strategy: str = "full"          # full | tail
    tail_lines: Optional[int] = None    # Line budget chosen by the tail plan
    bytes_total: int = 0
    bytes_read: int = 0
    lines_read: int = 0
    line_budget: Optional[int] = None
    byte_budget: Optional[int] = None
    truncated: bool = False         # A hard budget stopped the read early
    targeted_lines: int = 0         # Lines added by a targeted re-read
    events: int = 0
    unrecognized: int = 0
    partial: int = 0
    unanalyzable: int = 0

    @property
    def failed(self) -> bool:
        return self.status is FileStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "error": self.error,
            "strategy": self.strategy,
            "tail_lines": self.tail_lines,
            "bytes_total": self.bytes_total,
            "bytes_read": self.bytes_read,
            "lines_read": self.lines_read,
            "line_budget": self.line_budget,
            "byte_budget": self.byte_budget,
            "truncated": self.truncated,
            "targeted_lines": self.targeted_lines,
            "events": self.events,
            "unrecognized": self.unrecognized,
            "partial": self.partial,
            "unanalyzable": self.unanalyzable,
        }


@dataclass
class SignatureSummary:
    """One row of the top error signatures table."""

    signature: str
    exception_kind: Optional[str]
    count: int
    trend: str
    latest_window_count: int
    baseline_mean: float
    first_seen: datetime
    last_seen: datetime
    sample_message: str
    primary_location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "exception_kind": self.exception_kind,
            "count": self.count,
            "trend": self.trend,
            "latest_window_count": self.latest_window_count,
            "baseline_mean": round(self.baseline_mean, 3),
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "sample_message": self.sample_message,
            "primary_location": self.primary_location,
        }


@dataclass
class EventSummary:
    """Compact view of an event inside a correlation group."""

    timestamp: datetime
    severity: str
    exception_kind: Optional[str]
    message: str
    source: str                     # file:line of the originating record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
            "exception_kind": self.exception_kind,
            "message": self.message,
            "source": self.source,
        }


@dataclass
class GroupSummary:
    """One correlated incident."""

    reason: str
    label: str
    size: int
    trigger: EventSummary
    cascades: List[EventSummary] = field(default_factory=list)
    duplicate_count: int = 0
    correlation_id: Optional[str] = None
    primary_location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "label": self.label,
            "size": self.size,
            "trigger": self.trigger.to_dict(),
            "cascades": [c.to_dict() for c in self.cascades],
            "duplicate_count": self.duplicate_count,
            "correlation_id": self.correlation_id,
            "primary_location": self.primary_location,
        }


@dataclass
class Report:
    """
    Aggregate analysis of one run.

    The unrecognized/partial/unanalyzable counters are always present so that
    dropped input is visible to the reader.
    """

    total_events: int = 0
    severity_counts: Dict[str, int] = field(default_factory=dict)
    top_signatures: List[SignatureSummary] = field(default_factory=list)
    groups: List[GroupSummary] = field(default_factory=list)
    singleton_count: int = 0
    unrecognized_records: int = 0
    partial_records: int = 0
    unanalyzable_records: int = 0
    files: List[FileOutcome] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def malformed_records(self) -> int:
        """Records that were skipped or only partially understood."""
        return self.unrecognized_records + self.partial_records

    @property
    def failed_files(self) -> List[FileOutcome]:
        return [f for f in self.files if f.failed]

    @property
    def spikes(self) -> List[SignatureSummary]:
        return [s for s in self.top_signatures if s.trend == "spike"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "severity_counts": dict(self.severity_counts),
            "top_signatures": [s.to_dict() for s in self.top_signatures],
            "groups": [g.to_dict() for g in self.groups],
            "singleton_count": self.singleton_count,
            "unrecognized_records": self.unrecognized_records,
            "partial_records": self.partial_records,
            "unanalyzable_records": self.unanalyzable_records,
            "malformed_records": self.malformed_records,
            "files": [f.to_dict() for f in self.files],
            "metadata": dict(self.metadata),
        }
