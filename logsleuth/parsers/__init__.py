# Log format parsers
from .base import FormatSignature, LogParser, ParseResult, RecordWindow, parse_timestamp
from .bracketed_line import BracketedLineParser
from .detector import FormatDetector, default_detector, default_parsers
from .framework_line import FrameworkLineParser
from .plain_fatal import PlainFatalParser
from .slow_log import SlowLogParser
from .structured_json import StructuredJsonParser

__all__ = [
    "FormatSignature",
    "LogParser",
    "ParseResult",
    "RecordWindow",
    "parse_timestamp",
    "BracketedLineParser",
    "FormatDetector",
    "default_detector",
    "default_parsers",
    "FrameworkLineParser",
    "PlainFatalParser",
    "SlowLogParser",
    "StructuredJsonParser",
]
