"""
Framework exception line parser.

Monolog lines written by a framework's exception handler. They share the
bracketed-line prefix but carry an exception and, for Laravel, a multi-line
stack trace:

    [2024-01-15T10:30:00+00:00] request.CRITICAL: Uncaught PHP Exception App\\Ex: "boom" at /app/src/A.php line 12 {"exception":"[object] (...)"} []

    [2024-01-15 10:30:00] production.ERROR: boom {"exception":"[object] (App\\Ex(code: 0): boom at /var/www/app/A.php:12)
    [stacktrace]
    #0 /var/www/vendor/laravel/framework/src/Illuminate/Pipeline/Pipeline.php(180): App\\A->handle()
    #1 {main}
    "}
"""

import re
from typing import List, Optional

from ..models.parsed_event import Severity, StackFrame
from .base import (
    BRACKETED_ISO_PREFIX,
    BRACKETED_PHP_PREFIX,
    EXCEPTION_OBJECT_RE,
    FormatSignature,
    LogParser,
    ParseResult,
    RecordWindow,
    format_location,
    parse_php_frame,
    parse_timestamp,
    split_trailing_json,
)
from .bracketed_line import BRACKETED_LINE_RE, build_context


SYMFONY_UNCAUGHT_RE = re.compile(
    r'^Uncaught PHP Exception (?P<kind>[^\s:]+): "(?P<message>.*)" at (?P<file>.+?) line (?P<line>\d+)$',
    re.DOTALL,
)

EXCEPTION_MARKERS = ("Uncaught PHP Exception ", '"exception":"[object] (')


def _is_framework_line(line: str) -> bool:
    if not BRACKETED_LINE_RE.match(line.rstrip("\r\n")):
        return False
    return any(marker in line for marker in EXCEPTION_MARKERS)


def _starts_new_record(text: str) -> bool:
    return bool(BRACKETED_ISO_PREFIX.match(text) or BRACKETED_PHP_PREFIX.match(text))


class FrameworkLineParser(LogParser):
    """Parser for Symfony/Laravel exception records."""

    name = "framework-line"
    signature = FormatSignature(name=name, predicate=_is_framework_line, priority=20)

    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        origin = window.first
        header = BRACKETED_LINE_RE.match(origin.text.rstrip("\r\n"))
        if not header:
            return None

        body_lines = [header.group("body") or ""]
        frames: List[StackFrame] = []
        consumed = 1

        # seeking-start is done by the detector; the loop below is the
        # accumulating-body state, leaving it is the done state
        in_trace = False
        trace_count = 0
        saw_main = False
        terminated = True

        while True:
            record = window.get(consumed)
            if record is None or _starts_new_record(record.text):
                terminated = not in_trace or saw_main
                break

            stripped = record.text.strip()

            if stripped == "[stacktrace]":
                in_trace = True
                saw_main = False
                trace_count += 1
            elif stripped.startswith("[previous exception]"):
                in_trace = False
            elif in_trace and not saw_main:
                parsed = parse_php_frame(stripped)
                if parsed is None:
                    # A blank or foreign line inside a trace means it was cut off
                    terminated = False
                    break
                frame, is_main = parsed
                if is_main:
                    saw_main = True
                elif trace_count == 1:
                    frames.append(frame)
            elif stripped.startswith('"}'):
                body_lines.append(record.text)
                consumed += 1
                terminated = not in_trace or saw_main
                break
            else:
                terminated = not in_trace or saw_main
                break

            body_lines.append(record.text)
            consumed += 1

        body = "\n".join(body_lines)
        message, context, extra = split_trailing_json(body)
        partial = not terminated

        if context is None and " {" in body_lines[0]:
            # Context JSON did not decode: keep the header text only
            message = body_lines[0].split(" {", 1)[0]
            partial = True

        exception_kind = None
        source_location = None

        exception = context.get("exception") if isinstance(context, dict) else None
        if isinstance(exception, str):
            em = EXCEPTION_OBJECT_RE.search(exception)
            if em:
                exception_kind = em.group("kind")
                source_location = em.group("location")

        sm = SYMFONY_UNCAUGHT_RE.match(message)
        if sm:
            exception_kind = exception_kind or sm.group("kind")
            source_location = source_location or format_location(sm.group("file"), int(sm.group("line")))
            message = sm.group("message")

        if exception_kind is None:
            em = EXCEPTION_OBJECT_RE.search(body)
            if em:
                exception_kind = em.group("kind")
                source_location = em.group("location")

        # PHP traces list the throw site first; frames are stored outermost first
        frames.reverse()

        return self.build_event(
            origin,
            parse_timestamp(header.group("ts")),
            Severity.from_name(header.group("level")),
            message,
            channel=header.group("channel"),
            exception_kind=exception_kind,
            stack=frames,
            context=build_context(context, extra),
            source_location=source_location,
            partial=partial,
            consumed=consumed,
        )
