"""
Format detection.

A priority-ordered registry of parsers. Each record's first line is tested
against the registered signatures; the first match wins, ties keep
registration order.
"""

from typing import Iterable, List, Optional

from ..models.raw_record import RawRecord
from .base import LogParser
from .bracketed_line import BracketedLineParser
from .framework_line import FrameworkLineParser
from .plain_fatal import PlainFatalParser
from .slow_log import SlowLogParser
from .structured_json import StructuredJsonParser


class FormatDetector:
    """
    Select the parser for a record.

    Detection is total and deterministic: for identical input the same
    parser (or None for "unrecognized") is chosen every time.
    """

    def __init__(self, parsers: Optional[Iterable[LogParser]] = None):
        self._parsers: List[LogParser] = []
        for parser in parsers or ():
            self.register(parser)

    def register(self, parser: LogParser) -> None:
        """Add a parser; ordering is by priority, then by registration."""
        self._parsers.append(parser)
        # list.sort is stable, so equal priorities keep registration order
        self._parsers.sort(key=lambda p: p.signature.priority)

    @property
    def parsers(self) -> List[LogParser]:
        return list(self._parsers)

    def detect(self, record: RawRecord) -> Optional[LogParser]:
        """
        Find the best matching parser for a record.

        Returns:
            The first matching parser, or None if the record is unrecognized
        """
        if record.is_blank:
            return None

        for parser in self._parsers:
            if parser.matches(record.text):
                return parser
        return None

    def detect_format(self, record: RawRecord) -> Optional[str]:
        """Name of the detected format, or None."""
        parser = self.detect(record)
        return parser.name if parser else None


def default_parsers() -> List[LogParser]:
    """The built-in dialects, most specific first."""
    return [
        StructuredJsonParser(),
        FrameworkLineParser(),
        BracketedLineParser(),
        PlainFatalParser(),
        SlowLogParser(),
    ]


def default_detector() -> FormatDetector:
    return FormatDetector(default_parsers())
