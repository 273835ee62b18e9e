"""
Parser base classes and shared helpers.

Every log dialect implements LogParser. A parser is handed a RecordWindow
positioned at the record to parse and reports how many records it consumed,
so multi-line dialects can read ahead without unbounded lookahead.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.parsed_event import ContextValue, ParsedEvent, Severity, StackFrame
from ..models.raw_record import RawRecord
from ..utils.normalize import normalize_message


# -----------------------------
# FORMAT SIGNATURE
# -----------------------------

@dataclass(frozen=True)
class FormatSignature:
    """
    Cheap structural test identifying a dialect from its first line.

    Lower priority values are tried first; equal priorities keep
    registration order.
    """
    name: str
    predicate: Callable[[str], bool]
    priority: int = 100

    def matches(self, line: str) -> bool:
        try:
            return bool(self.predicate(line))
        except (TypeError, ValueError):
            return False


@dataclass
class ParseResult:
    """An event plus the number of records it was built from."""
    event: ParsedEvent
    consumed: int


class RecordWindow:
    """
    Read-only view over a list of records starting at a given index.

    Indexing is relative to the start; the view never reaches past the end
    of the underlying input.
    """

    def __init__(self, records: Sequence[RawRecord], start: int = 0):
        self._records = records
        self._start = start

    def __len__(self) -> int:
        return max(0, len(self._records) - self._start)

    def __getitem__(self, index: int) -> RawRecord:
        if index < 0 or index >= len(self):
            raise IndexError(index)
        return self._records[self._start + index]

    def __iter__(self) -> Iterator[RawRecord]:
        for i in range(len(self)):
            yield self[i]

    def get(self, index: int) -> Optional[RawRecord]:
        """Get the record at index, or None past end of input."""
        if 0 <= index < len(self):
            return self[index]
        return None

    @property
    def first(self) -> RawRecord:
        return self[0]


class LogParser(ABC):
    """Interface implemented by every log dialect."""

    name: str = "unknown"
    signature: FormatSignature

    @abstractmethod
    def try_parse(self, window: RecordWindow) -> Optional[ParseResult]:
        """
        Parse the record at the start of the window.

        Returns:
            ParseResult with the event and the number of records consumed,
            or None if the window does not start with this dialect.
        """

    def matches(self, line: str) -> bool:
        return self.signature.matches(line)

    def build_event(
        self,
        origin: RawRecord,
        timestamp: Optional[datetime],
        severity: Severity,
        message: str,
        *,
        channel: Optional[str] = None,
        exception_kind: Optional[str] = None,
        stack: Optional[List[StackFrame]] = None,
        context: Optional[Dict[str, ContextValue]] = None,
        source_location: Optional[str] = None,
        partial: bool = False,
        consumed: int = 1,
    ) -> ParseResult:
        """Assemble a ParsedEvent with the normalized message filled in."""
        event = ParsedEvent(
            timestamp=timestamp,
            severity=severity,
            message=message,
            normalized_message=normalize_message(message),
            source_format=self.name,
            origin=origin,
            channel=channel,
            exception_kind=exception_kind or None,
            stack=stack or [],
            context=context or {},
            source_location=source_location,
            partial=partial,
            lines_consumed=consumed,
        )
        return ParseResult(event=event, consumed=consumed)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


# -----------------------------
# TIMESTAMPS
# -----------------------------

BRACKETED_ISO_PREFIX = re.compile(r"^\[\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}[^\]]*\]")
BRACKETED_PHP_PREFIX = re.compile(r"^\[\d{2}-[A-Za-z]{3}-\d{4} \d{2}:\d{2}:\d{2}(?: [^\]]+)?\]")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_FRACTION = re.compile(r"(\.\d+)")
_PHP_DATE = re.compile(
    r"^(?P<date>\d{2}-[A-Za-z]{3}-\d{4} \d{2}:\d{2}:\d{2})(?: (?P<tz>\S+))?$"
)
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def _as_utc(value: datetime) -> datetime:
    # Timezone-naive inputs are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(text: str) -> Optional[datetime]:
    s = text.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    # fromisoformat accepts at most 6 fractional digits on older interpreters
    s = _FRACTION.sub(lambda m: m.group(1)[:7].ljust(7, "0"), s, count=1)
    # "+0000" offsets
    s = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", s)
    try:
        return _as_utc(datetime.fromisoformat(s))
    except ValueError:
        return None


def _parse_php_date(text: str) -> Optional[datetime]:
    m = _PHP_DATE.match(text.strip())
    if not m:
        return None

    day, month, rest = m.group("date").split("-", 2)
    month_no = _MONTHS.get(month.lower())
    if month_no is None:
        return None

    year, clock = rest.split(" ", 1)
    try:
        hour, minute, second = (int(p) for p in clock.split(":"))
        value = datetime(int(year), month_no, int(day), hour, minute, second)
    except ValueError:
        return None

    tz_name = m.group("tz")
    if not tz_name or tz_name.upper() in ("UTC", "GMT", "Z"):
        return value.replace(tzinfo=timezone.utc)

    try:
        return value.replace(tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)
    except (ZoneInfoNotFoundError, ValueError):
        # Unknown zone: the instant is ambiguous
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings, PHP error_log dates ("15-Jan-2024 10:30:00
    UTC"), epoch seconds/milliseconds and Monolog 1.x serialized DateTime
    dicts. Returns None when the value cannot be turned into an instant.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds > 1e11:       # epoch milliseconds
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, dict):
        date = value.get("date")
        if not isinstance(date, str):
            return None
        parsed = _parse_iso(date)
        tz_name = value.get("timezone")
        if parsed is None or not tz_name or str(tz_name).upper() == "UTC":
            return parsed
        try:
            local = parsed.replace(tzinfo=None).replace(tzinfo=ZoneInfo(str(tz_name)))
        except (ZoneInfoNotFoundError, ValueError):
            return _iso_with_offset(date, str(tz_name))
        return local.astimezone(timezone.utc)

    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if _ISO_DATE.match(text):
        return _parse_iso(text)
    return _parse_php_date(text)


def _iso_with_offset(date: str, offset: str) -> Optional[datetime]:
    # Monolog 1.x stores fixed offsets like "+02:00" in the timezone field
    if re.fullmatch(r"[+-]\d{2}:?\d{2}", offset):
        return _parse_iso(f"{date.strip()}{offset}")
    return None


# -----------------------------
# STACK FRAMES
# -----------------------------

# #0 /var/www/src/Foo.php(42): App\Foo->bar('x')
# #1 [internal function]: App\Foo->baz()
# #2 {main}
PHP_FRAME_RE = re.compile(
    r"""
    ^\s*\#(?P<index>\d+)\s+
    (?:
        (?P<main>\{main\})
      | \[internal\ function\]:\s*(?P<internal>.*)
      | (?P<file>.+?)\((?P<line>\d+)\):\s*(?P<symbol>.*)
    )
    \s*$
    """,
    re.VERBOSE,
)

# /var/www/src/Foo.php:42  or  /var/www/src/Foo.php line 42  or  ... on line 42
FILE_LINE_RE = re.compile(r"^(?P<file>.+?)(?::| line | on line )(?P<line>\d+)$")


# Monolog normalized exception: [object] (Kind(code: 0): message at /path/File.php:42)
EXCEPTION_OBJECT_RE = re.compile(
    r"\[object\] \((?P<kind>[^\s(]+)\(code: (?P<code>[^)]*)\): "
    r"(?P<message>.*?) at (?P<location>\S+?:\d+)\)",
    re.DOTALL,
)


def parse_php_frame(line: str) -> Optional[Tuple[Optional[StackFrame], bool]]:
    """
    Parse a PHP "#N ..." stack line.

    Returns:
        (frame, is_main) or None when the line is not a stack line. The
        "{main}" terminator returns (None, True).
    """
    m = PHP_FRAME_RE.match(line)
    if not m:
        return None

    if m.group("main"):
        return None, True

    if m.group("internal") is not None:
        return StackFrame(file=None, line=None, symbol=m.group("internal").strip() or "[internal]"), False

    return (
        StackFrame(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            symbol=m.group("symbol").strip(),
        ),
        False,
    )


def split_file_line(text: Optional[str]) -> Tuple[Optional[str], Optional[int]]:
    """Split "path:line" (or "path line N") into its parts."""
    if not text:
        return None, None
    m = FILE_LINE_RE.match(text.strip())
    if not m:
        return text.strip(), None
    return m.group("file"), int(m.group("line"))


def format_location(file: Optional[str], line: Optional[int]) -> Optional[str]:
    if not file:
        return None
    return f"{file}:{line}" if line is not None else file


# -----------------------------
# CONTEXT
# -----------------------------

_LENIENT_JSON = json.JSONDecoder(strict=False)


def decode_json_prefix(text: str, start: int = 0) -> Optional[Tuple[Any, int]]:
    """Decode one JSON value at text[start:]; returns (value, end) or None."""
    try:
        return _LENIENT_JSON.raw_decode(text, start)
    except (ValueError, RecursionError):
        return None


def split_trailing_json(text: str) -> Tuple[str, Optional[Any], Optional[Any]]:
    """
    Split a Monolog line body "message {context} {extra}" into its parts.

    Scans candidate JSON starts from left to right and accepts the first one
    that, together with an optional second JSON value, reaches the end of
    the text. Returns (message, context, extra).
    """
    body = text.rstrip()
    for idx, ch in enumerate(body):
        if ch not in "{[":
            continue
        if idx > 0 and body[idx - 1] != " ":
            continue

        decoded = decode_json_prefix(body, idx)
        if decoded is None:
            continue
        first, end = decoded
        remainder = body[end:].strip()

        if not remainder:
            return body[:idx].rstrip(), first, None

        second = decode_json_prefix(remainder)
        if second is not None and not remainder[second[1]:].strip():
            return body[:idx].rstrip(), first, second[0]

    return body, None, None


def flatten_context(data: Any, prefix: str = "", out: Optional[Dict[str, ContextValue]] = None) -> Dict[str, ContextValue]:
    """
    Flatten nested mappings into dotted keys with scalar values.

    Lists and other values are stored as compact JSON strings.
    """
    if out is None:
        out = {}

    if isinstance(data, dict):
        for key, value in data.items():
            name = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, dict):
                flatten_context(value, name, out)
            elif value is None:
                continue
            elif isinstance(value, (str, int, float, bool)):
                out[name] = value
            else:
                out[name] = json.dumps(value, default=str, separators=(",", ":"))
    elif data not in (None, [], ""):
        out[prefix or "value"] = json.dumps(data, default=str, separators=(",", ":"))

    return out
