"""
Plain PHP error_log parser.

    [15-Jan-2024 10:30:00 UTC] PHP Fatal error:  Uncaught RuntimeException: Connection lost in /var/www/src/Db.php:17
    Stack trace:
    #0 /var/www/src/Repository.php(20): App\\Db->connect()
    #1 {main}
      thrown in /var/www/src/Db.php on line 17

Warnings and notices are single lines:

    [15-Jan-2024 10:30:01 UTC] PHP Warning:  Undefined variable $id in /var/www/src/A.php on line 5
"""

import re
from enum import Enum, auto
from typing import List, Optional

from ..models.parsed_event import Severity, StackFrame
from .base import (
    BRACKETED_ISO_PREFIX,
    BRACKETED_PHP_PREFIX,
    FormatSignature,
    LogParser,
    ParseResult,
    RecordWindow,
    format_location,
    parse_php_frame,
    parse_timestamp,
)


HEADER_RE = re.compile(
    r"^\[(?P<ts>\d{2}-[A-Za-z]{3}-\d{4} \d{2}:\d{2}:\d{2}(?: [^\]]+)?)\] "
    r"PHP (?P<type>[A-Za-z ]+?):\s+(?P<body>.*)$"
)

# PHP 7+: Uncaught RuntimeException: message in /path/File.php:17
UNCAUGHT_RE = re.compile(
    r"^Uncaught (?P<kind>[\w\\]+): (?P<message>.*) in (?P<file>\S+):(?P<line>\d+)$"
)

# PHP 5: Uncaught exception 'PDOException' with message 'msg' in /path/File.php:17
UNCAUGHT_LEGACY_RE = re.compile(
    r"^Uncaught exception '(?P<kind>[\w\\]+)' with message '(?P<message>.*)' in (?P<file>\S+):(?P<line>\d+)$"
)

LOCATED_RE = re.compile(r"^(?P<message>.*) in (?P<file>\S+?)(?: on line |:)(?P<line>\d+)$")

THROWN_IN_RE = re.compile(r"^\s*thrown in (?P<file>.+?) on line (?P<line>\d+)\s*$")


class _State(Enum):
    HEADER = auto()
    STACK = auto()
    DONE = auto()


def _is_php_error_line(line: str) -> bool:
    return bool(HEADER_RE.match(line.rstrip("\r\n")))


class PlainFatalParser(LogParser):
    """Parser for PHP error_log records with optional stack traces."""

    name = "plain-fatal"
    signature = FormatSignature(name=name, predicate=_is_php_error_line, priority=40)

    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        origin = window.first
        header = HEADER_RE.match(origin.text.rstrip("\r\n"))
        if not header:
            return None

        exception_kind, message, source_location = self._parse_body(header.group("body").strip())

        frames: List[StackFrame] = []
        consumed = 1
        partial = False
        state = _State.HEADER

        while state is not _State.DONE:
            record = window.get(consumed)

            if state is _State.HEADER:
                if record is not None and record.text.strip() == "Stack trace:":
                    state = _State.STACK
                    consumed += 1
                else:
                    state = _State.DONE
                continue

            # Accumulating the stack trace until "{main}"
            if record is None or record.is_blank or self._starts_new_record(record.text):
                partial = True
                break

            parsed = parse_php_frame(record.text)
            if parsed is None:
                partial = True
                break

            consumed += 1
            frame, is_main = parsed
            if not is_main:
                frames.append(frame)
                continue

            trailer = window.get(consumed)
            if trailer is not None:
                thrown = THROWN_IN_RE.match(trailer.text)
                if thrown:
                    consumed += 1
                    source_location = source_location or format_location(
                        thrown.group("file"), int(thrown.group("line"))
                    )
            state = _State.DONE

        # "#0" is the throw site; frames are stored outermost first
        frames.reverse()

        return self.build_event(
            origin,
            parse_timestamp(header.group("ts")),
            Severity.from_name(header.group("type")),
            message,
            channel="php",
            exception_kind=exception_kind,
            stack=frames,
            source_location=source_location,
            partial=partial,
            consumed=consumed,
        )

    def _parse_body(self, body: str):
        """Split the header body into (exception kind, message, location)."""
        for pattern in (UNCAUGHT_RE, UNCAUGHT_LEGACY_RE):
            m = pattern.match(body)
            if m:
                return (
                    m.group("kind"),
                    m.group("message"),
                    format_location(m.group("file"), int(m.group("line"))),
                )

        m = LOCATED_RE.match(body)
        if m:
            return None, m.group("message"), format_location(m.group("file"), int(m.group("line")))

        return None, body, None

    @staticmethod
    def _starts_new_record(text: str) -> bool:
        return bool(BRACKETED_PHP_PREFIX.match(text) or BRACKETED_ISO_PREFIX.match(text))
