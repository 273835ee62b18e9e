"""
Log Parser Node for LangGraph.

Reads each input file, detects the format of every record, parses records
into events and enriches them with request context and classified stack
frames. Files are processed by a worker pool; results are collected in
input order so the rest of the pipeline sees a deterministic stream.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from ..models.parsed_event import ParsedEvent
from ..models.raw_record import RawRecord
from ..models.report import FileOutcome, FileStatus
from ..parsers import FormatDetector, RecordWindow, default_detector
from ..utils.config import AnalysisSettings
from ..utils.log_reader import LogReadError, read_log_file, read_with_grep
from .context_extractor import enrich
from .stack_classifier import StackFrameClassifier


logger = logging.getLogger(__name__)


@dataclass
class ParseStats:
    """Counters for one file's records."""
    records: int = 0
    blank: int = 0
    unrecognized: int = 0
    partial: int = 0
    unanalyzable: int = 0
    filtered: int = 0               # Outside the since/until range
    formats: Counter = field(default_factory=Counter)


@dataclass
class FileResult:
    """Everything produced from one input file."""
    outcome: FileOutcome
    events: List[ParsedEvent] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)


def parse_records(
    records: Sequence[RawRecord],
    detector: FormatDetector,
    file_index: int = 0,
) -> Tuple[List[ParsedEvent], ParseStats]:
    """
    Parse a record sequence into events.

    Blank lines are skipped. Records no parser recognizes, or that the
    detected parser cannot turn into an event (including one that raises on
    unexpected field types), are counted as unrecognized
    and skipped one line at a time.

    Returns:
        (events in input order, counters)
    """
    events: List[ParsedEvent] = []
    stats = ParseStats(records=len(records))

    index = 0
    while index < len(records):
        record = records[index]
        if record.is_blank:
            stats.blank += 1
            index += 1
            continue

        parser = detector.detect(record)
        result = None
        if parser:
            try:
                result = parser.try_parse(RecordWindow(records, index))
            except Exception as e:
                logger.debug(
                    "%s parser failed at %s:%d: %s",
                    parser.name, record.file_id, record.line_number, e,
                )
        if result is None:
            logger.debug("Unrecognized record at %s:%d", record.file_id, record.line_number)
            stats.unrecognized += 1
            index += 1
            continue

        event = result.event
        event.sequence = (file_index, index)
        stats.formats[event.source_format] += 1
        if event.partial:
            stats.partial += 1
        if not event.is_analyzable:
            logger.debug("No usable timestamp at %s:%d", record.file_id, record.line_number)
            stats.unanalyzable += 1
        events.append(event)
        index += max(1, result.consumed)

    return events, stats


def in_time_range(event: ParsedEvent, since: Optional[datetime], until: Optional[datetime]) -> bool:
    """Events without a timestamp are kept; they are never analyzed anyway."""
    if event.timestamp is None:
        return True
    if since is not None and event.timestamp < since:
        return False
    if until is not None and event.timestamp > until:
        return False
    return True


def parse_file(
    path: str,
    file_index: int,
    settings: AnalysisSettings,
    detector: Optional[FormatDetector] = None,
    classifier: Optional[StackFrameClassifier] = None,
) -> FileResult:
    """
    Run read -> detect -> parse -> extract -> classify for one file.

    A file that cannot be read is returned with a FAILED outcome; it never
    raises for I/O problems.
    """
    detector = detector or default_detector()
    classifier = classifier or StackFrameClassifier(settings.vendor_prefixes, settings.project_roots)
    outcome = FileOutcome(path=str(path), line_budget=settings.max_lines, byte_budget=settings.max_bytes)

    try:
        if settings.grep_pattern:
            read = read_with_grep(
                path,
                settings.grep_pattern,
                max_lines=settings.max_lines,
                max_bytes=settings.max_bytes,
                after=settings.grep_context_lines,
            )
        else:
            read = read_log_file(path, max_lines=settings.max_lines, max_bytes=settings.max_bytes)
    except LogReadError as e:
        logger.warning("Skipping %s: %s", path, e.reason)
        outcome.status = FileStatus.FAILED
        outcome.error = e.reason
        return FileResult(outcome=outcome)

    outcome.strategy = read.plan.strategy
    outcome.tail_lines = read.plan.tail_lines
    outcome.bytes_total = read.bytes_total
    outcome.bytes_read = read.bytes_read
    outcome.lines_read = read.lines_read
    outcome.truncated = read.truncated
    outcome.targeted_lines = read.targeted_lines

    events, stats = parse_records(read.records, detector, file_index)

    kept = []
    for event in events:
        if not in_time_range(event, settings.since, settings.until):
            stats.filtered += 1
            continue
        enrich(event)
        event.stack = classifier.classify_frames(event.stack)
        kept.append(event)

    outcome.events = len(kept)
    outcome.unrecognized = stats.unrecognized
    outcome.partial = stats.partial
    outcome.unanalyzable = stats.unanalyzable

    logger.info(
        "%s: %d events from %d lines (%d unrecognized, %d partial)",
        path, len(kept), read.lines_read, stats.unrecognized, stats.partial,
    )
    return FileResult(outcome=outcome, events=kept, stats=stats)


def parse_logs_node(state: dict[str, Any]) -> dict[str, Any]:
    """
    LangGraph node for parsing logs.

    Expects state to contain:
        - paths: list[str] - Log files to analyze
        - settings: AnalysisSettings

    Updates state with:
        - events: list[ParsedEvent] - All events, in file then record order
        - file_outcomes: list[FileOutcome] - One per input path
        - truncated: bool - Whether any read budget stopped a file early
    """
    paths = list(state.get("paths") or [])
    if not paths:
        raise ValueError("State must contain at least one path in 'paths'")

    settings: AnalysisSettings = state["settings"]
    detector = state.get("detector") or default_detector()
    classifier = StackFrameClassifier(settings.vendor_prefixes, settings.project_roots)

    workers = max(1, min(settings.max_workers, len(paths)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="logsleuth") as pool:
        futures = [
            pool.submit(parse_file, path, index, settings, detector, classifier)
            for index, path in enumerate(paths)
        ]
        # Drained in submission order, not completion order
        results = [future.result() for future in futures]

    events: List[ParsedEvent] = []
    for result in results:
        events.extend(result.events)

    outcomes = [r.outcome for r in results]
    formats: Counter = Counter()
    for result in results:
        formats.update(result.stats.formats)

    metadata = dict(state.get("metadata") or {})
    metadata.update(
        {
            "files_total": len(outcomes),
            "files_failed": sum(1 for o in outcomes if o.failed),
            "formats": dict(sorted(formats.items())),
            "filtered_events": sum(r.stats.filtered for r in results),
        }
    )

    return {
        **state,
        "events": events,
        "file_outcomes": outcomes,
        "truncated": any(o.truncated for o in outcomes),
        "metadata": metadata,
    }
