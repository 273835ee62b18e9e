"""
PHP-FPM slow log parser.

    [15-Jan-2024 10:30:00]  [pool www] pid 12345
    script_filename = /var/www/public/index.php
    [0x00007f1c2a6140a0] curl_exec() /var/www/vendor/guzzlehttp/guzzle/src/Handler/CurlHandler.php:44
    [0x00007f1c2a613f10] handle() /var/www/src/Service/Payment.php:88

Entries are separated by a blank line.
"""

import re
from typing import Dict, List, Optional

from ..models.parsed_event import Severity, StackFrame
from .base import (
    BRACKETED_ISO_PREFIX,
    BRACKETED_PHP_PREFIX,
    FormatSignature,
    LogParser,
    ParseResult,
    RecordWindow,
    parse_timestamp,
)


HEADER_RE = re.compile(
    r"^\[(?P<ts>\d{2}-[A-Za-z]{3}-\d{4} \d{2}:\d{2}:\d{2})\]\s+\[pool (?P<pool>[^\]]+)\] pid (?P<pid>\d+)\s*$"
)
SCRIPT_RE = re.compile(r"^script_filename = (?P<script>.+?)\s*$")
FRAME_RE = re.compile(r"^\[0x[0-9a-fA-F]+\] (?P<symbol>.+?) (?P<file>\S+):(?P<line>\d+)\s*$")


def _is_slow_log_header(line: str) -> bool:
    return bool(HEADER_RE.match(line.rstrip("\r\n")))


class SlowLogParser(LogParser):
    """Parser for PHP-FPM slow request traces."""

    name = "slow-log"
    signature = FormatSignature(name=name, predicate=_is_slow_log_header, priority=50)

    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        origin = window.first
        header = HEADER_RE.match(origin.text.rstrip("\r\n"))
        if not header:
            return None

        context: Dict[str, object] = {
            "pool": header.group("pool"),
            "pid": int(header.group("pid")),
        }
        frames: List[StackFrame] = []
        consumed = 1
        partial = False

        while True:
            record = window.get(consumed)
            if record is None:
                # Unterminated trailing entry
                partial = True
                break
            if record.is_blank:
                consumed += 1
                break
            if BRACKETED_PHP_PREFIX.match(record.text) or BRACKETED_ISO_PREFIX.match(record.text):
                # Next record started without the blank separator
                partial = not frames
                break

            text = record.text.strip()
            script = SCRIPT_RE.match(text)
            frame = FRAME_RE.match(text)
            if script:
                context["script_filename"] = script.group("script")
            elif frame:
                frames.append(
                    StackFrame(
                        file=frame.group("file"),
                        line=int(frame.group("line")),
                        symbol=frame.group("symbol"),
                    )
                )
            else:
                partial = True
                break
            consumed += 1

        # The slow log prints the executing frame first
        innermost = frames[0] if frames else None
        frames.reverse()

        script = context.get("script_filename", "unknown script")
        symbol = innermost.symbol if innermost else "unknown"
        message = f"Slow request in {script} while executing {symbol}"

        return self.build_event(
            origin,
            parse_timestamp(header.group("ts")),
            Severity.WARNING,
            message,
            channel="php-fpm.slow",
            stack=frames,
            context=context,
            source_location=innermost.location if innermost else None,
            partial=partial,
            consumed=consumed,
        )
