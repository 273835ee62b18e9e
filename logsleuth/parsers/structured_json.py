"""
Structured JSON parser.

One JSON object per line, as written by Monolog's JsonFormatter and most
structured loggers:

    {"message":"...","context":{...},"level":400,"level_name":"ERROR",
     "channel":"app","datetime":"2024-01-15T10:30:00.123456+00:00","extra":{...}}
"""

import json
import re
from typing import Any, Dict, List, Optional

from ..models.parsed_event import Severity, StackFrame
from .base import (
    EXCEPTION_OBJECT_RE,
    FormatSignature,
    LogParser,
    ParseResult,
    RecordWindow,
    flatten_context,
    format_location,
    parse_timestamp,
    split_file_line,
)


LEVEL_KEY_RE = re.compile(r'"(?:level|level_name|levelname|severity|log\.level)"\s*:')

MESSAGE_KEYS = ("message", "msg")
LEVEL_KEYS = ("level_name", "levelname", "severity", "log.level", "level")
CHANNEL_KEYS = ("channel", "logger", "logger_name")
TIME_KEYS = ("datetime", "@timestamp", "timestamp", "time", "ts")

CONSUMED_KEYS = set(MESSAGE_KEYS + LEVEL_KEYS + CHANNEL_KEYS + TIME_KEYS + ("context", "extra"))

# Best-effort field recovery from truncated objects
_PARTIAL_MESSAGE = re.compile(r'"(?:message|msg)"\s*:\s*"((?:[^"\\]|\\.)*)')
_PARTIAL_TIME = re.compile(r'"(?:datetime|@timestamp|timestamp|time|ts)"\s*:\s*"([^"]+)"')
_PARTIAL_LEVEL = re.compile(r'"(?:level_name|levelname|severity|level)"\s*:\s*"?(\w+)')
_PARTIAL_CHANNEL = re.compile(r'"channel"\s*:\s*"([^"]+)"')
_PARTIAL_CLASS = re.compile(r'"class"\s*:\s*"((?:[^"\\]|\\.)+)"')


def _looks_like_json_record(line: str) -> bool:
    s = line.lstrip()
    return s.startswith("{") and bool(LEVEL_KEY_RE.search(s))


def _first(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    """Only non-empty strings are usable as names and paths."""
    return value if isinstance(value, str) and value else None


def _unescape(fragment: str) -> str:
    try:
        return json.loads(f'"{fragment}"')
    except ValueError:
        return fragment


class StructuredJsonParser(LogParser):
    """Parser for single-line JSON log records."""

    name = "structured-json"
    signature = FormatSignature(name=name, predicate=_looks_like_json_record, priority=10)

    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        origin = window.first
        text = origin.text.strip()
        if not _looks_like_json_record(text):
            return None

        try:
            data = json.loads(text)
        except ValueError:
            return self._parse_truncated(origin, text)

        if not isinstance(data, dict):
            return self._parse_truncated(origin, text)

        return self._parse_object(origin, data)

    def _parse_object(self, origin, data: Dict[str, Any]) -> ParseResult:
        message = _first(data, MESSAGE_KEYS)
        message = "" if message is None else str(message)

        level = _first(data, LEVEL_KEYS)
        if isinstance(level, dict):
            level = level.get("name")
        severity = Severity.from_name(level)

        channel = _first(data, CHANNEL_KEYS)
        timestamp = parse_timestamp(_first(data, TIME_KEYS))

        context = data.get("context") if isinstance(data.get("context"), dict) else {}
        extra = data.get("extra") if isinstance(data.get("extra"), dict) else {}

        exception_kind = None
        source_location = None
        stack: List[StackFrame] = []

        exception = context.get("exception")
        if isinstance(exception, dict):
            exception_kind = _text(exception.get("class"))
            file, line = split_file_line(_text(exception.get("file")))
            source_location = format_location(file, line)
            stack = self._frames_from_trace(exception.get("trace"))
            if not message:
                message = str(exception.get("message", ""))
        elif isinstance(exception, str):
            m = EXCEPTION_OBJECT_RE.search(exception)
            if m:
                exception_kind = m.group("kind")
                source_location = m.group("location")
                if not message:
                    message = m.group("message")

        flat: Dict[str, Any] = {}
        flatten_context({k: v for k, v in context.items() if k != "exception"}, "context", flat)
        flatten_context(extra, "extra", flat)
        flatten_context(
            {k: v for k, v in data.items() if k not in CONSUMED_KEYS},
            "",
            flat,
        )

        return self.build_event(
            origin,
            timestamp,
            severity,
            message,
            channel=str(channel) if channel is not None else None,
            exception_kind=exception_kind,
            stack=stack,
            context=flat,
            source_location=source_location,
        )

    def _frames_from_trace(self, trace: Any) -> List[StackFrame]:
        """
        Build frames from Monolog's normalized trace.

        Monolog lists frames innermost first as "path:line" strings; frames
        are stored outermost first.
        """
        if not isinstance(trace, list):
            return []

        frames = []
        for entry in trace:
            if isinstance(entry, str):
                file, line = split_file_line(entry)
                frames.append(StackFrame(file=file, line=line, symbol=""))
            elif isinstance(entry, dict):
                symbol = "".join(
                    str(entry.get(k, "")) for k in ("class", "type", "function")
                )
                line = entry.get("line")
                frames.append(
                    StackFrame(
                        file=_text(entry.get("file")),
                        line=int(line) if isinstance(line, int) else None,
                        symbol=symbol,
                    )
                )
        frames.reverse()
        return frames

    def _parse_truncated(self, origin, text: str) -> ParseResult:
        """Recover what we can from an object that does not decode."""
        message_match = _PARTIAL_MESSAGE.search(text)
        time_match = _PARTIAL_TIME.search(text)
        level_match = _PARTIAL_LEVEL.search(text)
        channel_match = _PARTIAL_CHANNEL.search(text)
        class_match = _PARTIAL_CLASS.search(text)

        return self.build_event(
            origin,
            parse_timestamp(time_match.group(1)) if time_match else None,
            Severity.from_name(level_match.group(1) if level_match else None),
            _unescape(message_match.group(1)) if message_match else "",
            channel=channel_match.group(1) if channel_match else None,
            exception_kind=_unescape(class_match.group(1)) if class_match else None,
            partial=True,
        )
