"""
Log file reading.

Picks a read strategy from the file size (whole file for small logs, a tail
window for large ones), applies optional hard budgets, and can merge in a
targeted re-read of lines matching a pattern.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..models.raw_record import RawRecord


logger = logging.getLogger(__name__)

SMALL_FILE_BYTES = 10 * 1024
LARGE_FILE_BYTES = 1024 * 1024
MEDIUM_TAIL_LINES = 500
LARGE_TAIL_LINES = 1000
BLOCK_SIZE = 64 * 1024
ENCODING = "utf-8"


class LogReadError(Exception):
    """A log file could not be read (I/O failure or binary content)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class ReadPlan:
    """How much of a file to read."""
    strategy: str                   # full | tail
    tail_lines: Optional[int] = None


@dataclass
class ReadResult:
    """Records read from one file plus what the read covered."""

    path: str
    records: List[RawRecord] = field(default_factory=list)
    plan: ReadPlan = ReadPlan("full")
    bytes_total: int = 0
    bytes_read: int = 0
    truncated: bool = False
    line_budget: Optional[int] = None
    byte_budget: Optional[int] = None
    targeted_lines: int = 0

    @property
    def lines_read(self) -> int:
        return len(self.records)


def plan_read(size: int) -> ReadPlan:
    """
    Choose the read strategy for a file of the given size.

    < 10 KB reads the whole file, up to 1 MB the last 500 lines, beyond
    that the last 1000 lines.
    """
    if size < SMALL_FILE_BYTES:
        return ReadPlan("full")
    if size <= LARGE_FILE_BYTES:
        return ReadPlan("tail", MEDIUM_TAIL_LINES)
    return ReadPlan("tail", LARGE_TAIL_LINES)


def _check_binary(handle, path: str) -> None:
    head = handle.read(BLOCK_SIZE)
    if b"\x00" in head:
        raise LogReadError(path, "binary content (NUL byte in first block)")
    handle.seek(0)


def _split_lines(data: bytes, base_offset: int) -> List[Tuple[int, bytes]]:
    """Split raw bytes into (absolute offset, line) pairs without newlines."""
    lines = []
    pos = 0
    while pos < len(data):
        end = data.find(b"\n", pos)
        if end == -1:
            lines.append((base_offset + pos, data[pos:]))
            break
        lines.append((base_offset + pos, data[pos:end]))
        pos = end + 1
    return lines


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r").decode(ENCODING, errors="replace")


def _read_tail(handle, size: int, count: int) -> Tuple[int, bytes]:
    """
    Read enough trailing blocks to hold the last `count` lines.

    Returns (start offset, data); data starts on a line boundary.
    """
    position = size
    chunks: List[bytes] = []
    newlines = 0
    # A trailing newline does not start a new line
    wanted = count + 1

    while position > 0 and newlines < wanted:
        step = min(BLOCK_SIZE, position)
        position -= step
        handle.seek(position)
        block = handle.read(step)
        chunks.append(block)
        newlines += block.count(b"\n")

    data = b"".join(reversed(chunks))
    if position > 0:
        # Drop the partial first line
        cut = data.find(b"\n") + 1
        position += cut
        data = data[cut:]

    lines = _split_lines(data, position)
    if len(lines) > count:
        first_offset = lines[-count][0]
        data = data[first_offset - position:]
        position = first_offset
    return position, data


def read_log_file(
    path: str,
    max_lines: Optional[int] = None,
    max_bytes: Optional[int] = None,
    file_id: Optional[str] = None,
) -> ReadResult:
    """
    Read a log file according to its size plan and optional budgets.

    Budgets cut the planned window in file order; when they stop the read
    early the result is marked truncated.

    Raises:
        LogReadError: If the file cannot be opened/read or is binary
    """
    label = file_id or str(path)
    try:
        size = os.path.getsize(path)
        with open(path, "rb") as handle:
            _check_binary(handle, label)
            plan = plan_read(size)
            if plan.strategy == "full":
                start, data = 0, handle.read()
            else:
                start, data = _read_tail(handle, size, plan.tail_lines)
    except OSError as e:
        raise LogReadError(label, e.strerror or str(e)) from e

    result = ReadResult(
        path=label,
        plan=plan,
        bytes_total=size,
        line_budget=max_lines,
        byte_budget=max_bytes,
    )

    used = 0
    for number, (offset, raw) in enumerate(_split_lines(data, start), start=1):
        if max_lines is not None and number > max_lines:
            result.truncated = True
            break
        line_bytes = len(raw) + 1
        if max_bytes is not None and used + line_bytes > max_bytes:
            result.truncated = True
            break
        used += line_bytes
        result.records.append(RawRecord(label, number, offset, _decode(raw)))

    result.bytes_read = min(used, size - start)
    if result.truncated:
        logger.info("Read budget reached for %s after %d lines", label, result.lines_read)
    return result


def grep_file(
    path: str,
    pattern: str,
    after: int = 20,
    file_id: Optional[str] = None,
) -> List[RawRecord]:
    """
    Stream the whole file and return lines matching pattern.

    Each match is followed by up to `after` continuation lines (stopping at
    the next match) so multi-line records stay whole. Line numbers are
    absolute within the file.

    Raises:
        LogReadError: If the file cannot be read
        re.error: If the pattern is invalid
    """
    regex = re.compile(pattern)
    label = file_id or str(path)
    matches: List[RawRecord] = []
    remaining = 0

    try:
        with open(path, "rb") as handle:
            _check_binary(handle, label)
            offset = 0
            for number, raw in enumerate(handle, start=1):
                text = _decode(raw.rstrip(b"\n"))
                if regex.search(text):
                    matches.append(RawRecord(label, number, offset, text))
                    remaining = after
                elif remaining > 0:
                    matches.append(RawRecord(label, number, offset, text))
                    remaining -= 1
                offset += len(raw)
    except OSError as e:
        raise LogReadError(label, e.strerror or str(e)) from e

    return matches


def merge_records(window: List[RawRecord], extra: List[RawRecord]) -> List[RawRecord]:
    """
    Merge two record lists by byte offset, dropping duplicates.

    Line numbers are reassigned to positions within the merged window.
    """
    by_offset = {r.offset: r for r in extra}
    by_offset.update({r.offset: r for r in window})
    merged = [by_offset[o] for o in sorted(by_offset)]
    return [
        RawRecord(r.file_id, number, r.offset, r.text)
        for number, r in enumerate(merged, start=1)
    ]


def read_with_grep(
    path: str,
    pattern: str,
    max_lines: Optional[int] = None,
    max_bytes: Optional[int] = None,
    after: int = 20,
) -> ReadResult:
    """Tail/full read plus a targeted re-read of pattern matches."""
    result = read_log_file(path, max_lines=max_lines, max_bytes=max_bytes)
    targeted = grep_file(path, pattern, after=after, file_id=result.path)

    known = {r.offset for r in result.records}
    added = [r for r in targeted if r.offset not in known]
    if added:
        result.records = merge_records(result.records, added)
        result.targeted_lines = len(added)
        result.bytes_read += sum(len(r.text.encode(ENCODING, errors="replace")) + 1 for r in added)
    return result

