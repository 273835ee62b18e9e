"""
Parsed Event data model.

The normalized unit of analysis produced by every format parser.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Dict, List, Optional, Tuple, Union

from .raw_record import RawRecord


ContextValue = Union[str, int, float, bool]


class Severity(IntEnum):
    """Ordered log severity (PSR-3 / syslog levels)."""
    DEBUG = 100
    INFO = 200
    NOTICE = 250
    WARNING = 300
    ERROR = 400
    CRITICAL = 500
    ALERT = 550
    EMERGENCY = 600

    @classmethod
    def from_name(cls, name: Optional[Union[str, int]]) -> "Severity":
        """
        Resolve a level name or Monolog numeric level to a Severity.

        Unknown or missing names resolve to INFO.
        """
        if name is None:
            return cls.INFO

        if isinstance(name, int) and not isinstance(name, bool):
            # Monolog numeric levels map to the highest level not above them
            for member in sorted(cls, reverse=True):
                if name >= member.value:
                    return member
            return cls.DEBUG

        key = str(name).strip().upper()
        if key.isdigit():
            return cls.from_name(int(key))
        return _SEVERITY_ALIASES.get(key, cls.INFO)

    def is_error(self) -> bool:
        """Check if this severity represents an error."""
        return self >= Severity.ERROR


_SEVERITY_ALIASES: Dict[str, Severity] = {
    "DEBUG": Severity.DEBUG,
    "TRACE": Severity.DEBUG,
    "INFO": Severity.INFO,
    "NOTICE": Severity.NOTICE,
    "DEPRECATED": Severity.NOTICE,
    "STRICT STANDARDS": Severity.NOTICE,
    "WARN": Severity.WARNING,
    "WARNING": Severity.WARNING,
    "ERR": Severity.ERROR,
    "ERROR": Severity.ERROR,
    "RECOVERABLE FATAL ERROR": Severity.ERROR,
    "CATCHABLE FATAL ERROR": Severity.ERROR,
    "CRITICAL": Severity.CRITICAL,
    "CRIT": Severity.CRITICAL,
    "FATAL": Severity.CRITICAL,
    "FATAL ERROR": Severity.CRITICAL,
    "PARSE ERROR": Severity.CRITICAL,
    "ALERT": Severity.ALERT,
    "EMERGENCY": Severity.EMERGENCY,
    "EMERG": Severity.EMERGENCY,
}


@dataclass(frozen=True)
class StackFrame:
    """One frame of a stack trace."""

    file: Optional[str]     # None for "[internal function]" and "{main}"
    line: Optional[int]
    symbol: str             # Invoked function or method
    is_application_frame: bool = False

    @property
    def location(self) -> Optional[str]:
        """Get formatted location (file:line)."""
        if not self.file:
            return None
        if self.line is None:
            return self.file
        return f"{self.file}:{self.line}"

    def __str__(self) -> str:
        return f"{self.symbol} at {self.location or '[internal]'}"


@dataclass(frozen=True)
class RequestContext:
    """
    Request metadata pulled out of format-specific context fields.

    None means the field was absent; an empty string means it was present
    but empty.
    """

    url: Optional[str] = None
    method: Optional[str] = None
    user_id: Optional[str] = None
    correlation_id: Optional[str] = None
    client_ip: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.url,
                self.method,
                self.user_id,
                self.correlation_id,
                self.client_ip,
                self.session_id,
            )
        )


@dataclass(frozen=True)
class ErrorSignature:
    """
    Grouping key for "the same error kind".

    Built from the exception kind and the normalized message, so two events
    differing only in parameter values share a signature.
    """

    kind: Optional[str]
    pattern: str

    @property
    def key(self) -> str:
        return f"{self.kind or '-'}: {self.pattern}"

    def __str__(self) -> str:
        return self.key


@dataclass
class ParsedEvent:
    """
    Represents a single log record after format-specific parsing.

    The timestamp is None when the source timestamp could not be turned into
    an absolute instant; such events are kept for counting but are excluded
    from frequency and correlation analysis.
    """

    timestamp: Optional[datetime]
    severity: Severity
    message: str
    normalized_message: str
    source_format: str
    origin: RawRecord
    channel: Optional[str] = None
    exception_kind: Optional[str] = None
    stack: List[StackFrame] = field(default_factory=list)       # Outermost first
    context: Dict[str, ContextValue] = field(default_factory=dict)
    source_location: Optional[str] = None
    partial: bool = False
    lines_consumed: int = 1
    sequence: Tuple[int, int] = (0, 0)                          # (file index, record index)
    request: Optional[RequestContext] = None

    @property
    def signature(self) -> ErrorSignature:
        return ErrorSignature(kind=self.exception_kind, pattern=self.normalized_message)

    @property
    def is_analyzable(self) -> bool:
        """Check if the event can take part in frequency/correlation analysis."""
        return self.timestamp is not None

    @property
    def correlation_id(self) -> Optional[str]:
        if self.request is None:
            return None
        return self.request.correlation_id or None

    @property
    def sort_key(self) -> Tuple[datetime, Tuple[int, int]]:
        """Total ordering key: timestamp first, then position in the input."""
        return (self.timestamp, self.sequence)

    def to_context_string(self) -> str:
        """Format the event as a single summary line."""
        kind = f"{self.exception_kind}: " if self.exception_kind else ""
        where = f" ({self.source_location})" if self.source_location else ""
        return f"[{self.severity.name}] {kind}{self.message}{where}"

    def __str__(self) -> str:
        ts = self.timestamp.isoformat() if self.timestamp else "?"
        return f"{ts} {self.to_context_string()}"
