# Models package
from .raw_record import RawRecord
from .parsed_event import (
    ErrorSignature,
    ParsedEvent,
    RequestContext,
    Severity,
    StackFrame,
)
from .analysis import (
    CorrelationGroup,
    CorrelationReason,
    FrequencyBucket,
    SignatureStats,
    Trend,
)
from .report import FileOutcome, FileStatus, GroupSummary, Report, SignatureSummary

__all__ = [
    "RawRecord",
    "ErrorSignature",
    "ParsedEvent",
    "RequestContext",
    "Severity",
    "StackFrame",
    "CorrelationGroup",
    "CorrelationReason",
    "FrequencyBucket",
    "SignatureStats",
    "Trend",
    "FileOutcome",
    "FileStatus",
    "GroupSummary",
    "Report",
    "SignatureSummary",
]
