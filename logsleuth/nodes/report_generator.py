"""
Report Generator.

Turns aggregator and correlator output into a Report. Pure: no I/O, no
formatting; the CLI decides how to display it.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.analysis import CorrelationGroup, FrequencyBucket, SignatureStats, Trend
from ..models.parsed_event import ErrorSignature, ParsedEvent, Severity
from ..models.report import EventSummary, FileOutcome, GroupSummary, Report, SignatureSummary


def primary_location(event: ParsedEvent) -> Optional[str]:
    """Innermost application frame, falling back to the event's own location."""
    for frame in reversed(event.stack):
        if frame.is_application_frame and frame.location:
            return frame.location
    return event.source_location


def summarize_event(event: ParsedEvent) -> EventSummary:
    return EventSummary(
        timestamp=event.timestamp,
        severity=event.severity.name,
        exception_kind=event.exception_kind,
        message=event.message,
        source=f"{event.origin.file_id}:{event.origin.line_number}",
    )


def summarize_group(group: CorrelationGroup) -> GroupSummary:
    return GroupSummary(
        reason=group.reason.value,
        label=group.label,
        size=group.size,
        trigger=summarize_event(group.trigger),
        cascades=[summarize_event(e) for e in group.cascades],
        duplicate_count=len(group.duplicates),
        correlation_id=group.correlation_id,
        primary_location=primary_location(group.trigger),
    )


def _stats_from_buckets(buckets: Sequence[FrequencyBucket]) -> List[SignatureStats]:
    """
    Count-only statistics when no aggregator summary is available.

    Without the window size gaps cannot be measured, so the trend is
    reported as new for every signature.
    """
    grouped: Dict[ErrorSignature, List[FrequencyBucket]] = {}
    for bucket in buckets:
        grouped.setdefault(bucket.signature, []).append(bucket)

    latest = max((b.window_start for b in buckets), default=None)
    stats = []
    for signature, items in grouped.items():
        latest_count = sum(b.count for b in items if b.window_start == latest)
        stats.append(
            SignatureStats(
                signature=signature,
                total_count=sum(b.count for b in items),
                latest_count=latest_count,
                history_windows=0,
                baseline_mean=0.0,
                trend=Trend.NEW if latest_count else Trend.DECLINING,
                first_seen=min(b.first_seen for b in items),
                last_seen=max(b.last_seen for b in items),
            )
        )
    stats.sort(key=lambda s: (-s.total_count, s.signature.key))
    return stats


def render(
    buckets: Sequence[FrequencyBucket],
    groups: Sequence[CorrelationGroup],
    metadata: Optional[Dict[str, Any]] = None,
    *,
    stats: Optional[Sequence[SignatureStats]] = None,
    events: Iterable[ParsedEvent] = (),
    files: Sequence[FileOutcome] = (),
    top_n: int = 10,
) -> Report:
    """
    Build the analysis report.

    Args:
        buckets: Frequency buckets from the aggregator
        groups: Correlation groups (singletons included)
        metadata: Free-form run metadata copied into the report
        stats: Aggregator signature summaries (derived from buckets if None)
        events: All parsed events, for severity counts and sample messages
        files: Per-file outcomes carrying the dropped-input counters
        top_n: Number of signatures to list

    Returns:
        Report
    """
    events = list(events)
    stats = list(stats) if stats is not None else _stats_from_buckets(buckets)

    # Representative event per signature: the most recent one
    samples: Dict[ErrorSignature, ParsedEvent] = {}
    for event in events:
        if not event.is_analyzable:
            continue
        current = samples.get(event.signature)
        if current is None or event.sort_key >= current.sort_key:
            samples[event.signature] = event

    top_signatures = []
    for s in stats[:top_n]:
        sample = samples.get(s.signature)
        top_signatures.append(
            SignatureSummary(
                signature=s.signature.key,
                exception_kind=s.signature.kind,
                count=s.total_count,
                trend=s.trend.value,
                latest_window_count=s.latest_count,
                baseline_mean=s.baseline_mean,
                first_seen=s.first_seen,
                last_seen=s.last_seen,
                sample_message=sample.message if sample else s.signature.pattern,
                primary_location=primary_location(sample) if sample else None,
            )
        )

    severity = Counter(e.severity for e in events)
    severity_counts = {level.name: severity[level] for level in sorted(severity, reverse=True)}

    multi = [g for g in groups if not g.is_singleton]

    meta = dict(metadata or {})
    meta.setdefault("generated_at", datetime.now(timezone.utc).isoformat())
    meta.setdefault("error_events", sum(1 for e in events if e.severity >= Severity.ERROR))

    return Report(
        total_events=len(events) if events else sum(b.count for b in buckets),
        severity_counts=severity_counts,
        top_signatures=top_signatures,
        groups=[summarize_group(g) for g in multi],
        singleton_count=len(groups) - len(multi),
        unrecognized_records=sum(f.unrecognized for f in files),
        partial_records=sum(f.partial for f in files),
        unanalyzable_records=sum(f.unanalyzable for f in files),
        files=list(files),
        metadata=meta,
    )


def build_report_node(state: dict[str, Any]) -> dict[str, Any]:
    """
    LangGraph node for building the report.

    Expects state to contain:
        - events, file_outcomes, settings
        - buckets, signature_stats, groups (absent when nothing was analyzable)

    Updates state with:
        - report: Report
    """
    settings = state["settings"]
    report = render(
        state.get("buckets", []),
        state.get("groups", []),
        state.get("metadata"),
        stats=state.get("signature_stats"),
        events=state.get("events", []),
        files=state.get("file_outcomes", []),
        top_n=settings.top_n,
    )
    return {**state, "report": report}
