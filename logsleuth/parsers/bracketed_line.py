"""
Bracketed line parser.

Monolog LineFormatter output (Symfony, Laravel and most PSR-3 setups):

    [2024-01-15T10:30:00.123456+00:00] app.ERROR: Payment failed {"order_id":42} {"url":"/checkout"}
"""

import re
from typing import Optional

from ..models.parsed_event import Severity
from .base import (
    EXCEPTION_OBJECT_RE,
    FormatSignature,
    LogParser,
    ParseResult,
    RecordWindow,
    flatten_context,
    parse_timestamp,
    split_trailing_json,
)


BRACKETED_LINE_RE = re.compile(
    r"""
    ^\[(?P<ts>\d{4}-\d{2}-\d{2}[T\ ][^\]]+)\]   # [ISO8601]
    \s+
    (?P<channel>[\w\-.]+?)\.(?P<level>[A-Za-z]+):  # channel.LEVEL:
    (?:\s(?P<body>.*))?
    $
    """,
    re.VERBOSE,
)


def _is_bracketed_line(line: str) -> bool:
    return bool(BRACKETED_LINE_RE.match(line.rstrip("\r\n")))


def build_context(context, extra) -> dict:
    """Flatten Monolog context/extra into one map, exception excluded."""
    flat: dict = {}
    if isinstance(context, dict):
        flatten_context({k: v for k, v in context.items() if k != "exception"}, "context", flat)
    if isinstance(extra, dict):
        flatten_context(extra, "extra", flat)
    return flat


class BracketedLineParser(LogParser):
    """Parser for generic "[timestamp] channel.LEVEL: message" lines."""

    name = "bracketed-line"
    signature = FormatSignature(name=name, predicate=_is_bracketed_line, priority=30)

    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        origin = window.first
        m = BRACKETED_LINE_RE.match(origin.text.rstrip("\r\n"))
        if not m:
            return None

        message, context, extra = split_trailing_json(m.group("body") or "")

        exception_kind = None
        source_location = None
        exception = context.get("exception") if isinstance(context, dict) else None
        if isinstance(exception, str):
            em = EXCEPTION_OBJECT_RE.search(exception)
            if em:
                exception_kind = em.group("kind")
                source_location = em.group("location")

        return self.build_event(
            origin,
            parse_timestamp(m.group("ts")),
            Severity.from_name(m.group("level")),
            message,
            channel=m.group("channel"),
            exception_kind=exception_kind,
            context=build_context(context, extra),
            source_location=source_location,
        )
