"""
Unit tests for the report generator.
"""

from datetime import datetime, timedelta, timezone

from logsleuth.models.analysis import CorrelationGroup, CorrelationReason, FrequencyBucket
from logsleuth.models.parsed_event import ParsedEvent, Severity, StackFrame
from logsleuth.models.raw_record import RawRecord
from logsleuth.models.report import FileOutcome
from logsleuth.nodes.correlator import Correlator
from logsleuth.nodes.frequency import FrequencyAggregator
from logsleuth.nodes.report_generator import build_report_node, primary_location, render
from logsleuth.utils.config import AnalysisSettings
from logsleuth.utils.normalize import normalize_message


T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_event(offset_seconds, message="Connection refused to 10.0.0.5", kind="PDOException",
               index=0, severity=Severity.ERROR, stack=()):
    return ParsedEvent(
        timestamp=T0 + timedelta(seconds=offset_seconds),
        severity=severity,
        message=message,
        normalized_message=normalize_message(message),
        source_format="bracketed-line",
        origin=RawRecord("app.log", index + 1, index * 100, message),
        exception_kind=kind,
        stack=list(stack),
        source_location="/app/vendor/doctrine/dbal/src/Driver.php:40",
        sequence=(0, index),
    )


def analyze(events):
    aggregator = FrequencyAggregator(timedelta(hours=1))
    aggregator.observe_all(events)
    groups = Correlator().correlate(events)
    return aggregator, groups


class TestPrimaryLocation:
    """Tests for primary_location function."""

    def test_innermost_application_frame(self):
        """Test the application frame closest to the throw site wins."""
        stack = [
            StackFrame("/app/src/Controller.php", 10, "run()", is_application_frame=True),
            StackFrame("/app/src/Repository.php", 22, "find()", is_application_frame=True),
            StackFrame("/app/vendor/orm/Pool.php", 5, "get()"),
        ]
        assert primary_location(make_event(0, stack=stack)) == "/app/src/Repository.php:22"

    def test_falls_back_to_source_location(self):
        """Test events without application frames use their own location."""
        assert primary_location(make_event(0)) == "/app/vendor/doctrine/dbal/src/Driver.php:40"


class TestRender:
    """Tests for render function."""

    def test_report_contents(self):
        """Test counts, signatures and groups end up in the report."""
        events = [
            make_event(0, index=0),
            make_event(0.2, "Payment failed for order 42", "RuntimeException", index=1),
            make_event(60, "Connection refused to 10.0.0.9", index=2),
            make_event(120, "Cache miss", None, index=3, severity=Severity.WARNING),
        ]
        aggregator, groups = analyze(events)

        report = render(
            aggregator.snapshot(),
            groups,
            {"run": "test"},
            stats=aggregator.summaries(),
            events=events,
            top_n=2,
        )

        assert report.total_events == 4
        assert report.severity_counts == {"ERROR": 3, "WARNING": 1}
        assert len(report.top_signatures) == 2

        top = report.top_signatures[0]
        assert top.count == 2
        assert top.signature == "PDOException: Connection refused to <IP>"
        assert top.sample_message == "Connection refused to 10.0.0.9"
        assert top.trend == "new"

        assert len(report.groups) == 1
        assert report.groups[0].cascades[0].exception_kind == "RuntimeException"
        assert report.groups[0].label == "likely related"
        assert report.singleton_count == 2

        assert report.metadata["run"] == "test"
        assert report.metadata["error_events"] == 3
        assert "generated_at" in report.metadata

    def test_file_counters(self):
        """Test dropped-input counters are summed over files."""
        files = [
            FileOutcome("a.log", unrecognized=2, partial=1),
            FileOutcome("b.log", unrecognized=1, unanalyzable=4),
        ]
        report = render([], [], files=files)

        assert report.unrecognized_records == 3
        assert report.partial_records == 1
        assert report.unanalyzable_records == 4
        assert report.malformed_records == 4

    def test_empty(self):
        """Test an empty run renders an empty report."""
        report = render([], [])

        assert report.total_events == 0
        assert report.top_signatures == []
        assert report.groups == []
        assert report.to_dict()["malformed_records"] == 0

    def test_stats_derived_from_buckets(self):
        """Test render works from buckets alone."""
        events = [make_event(0, index=0), make_event(3600, index=1)]
        aggregator, _ = analyze(events)
        buckets = aggregator.snapshot()

        report = render(buckets, [])

        assert report.total_events == 2
        assert report.top_signatures[0].count == 2
        assert report.top_signatures[0].latest_window_count == 1

    def test_groups_ordered_and_serializable(self):
        """Test the JSON form of groups."""
        events = [
            make_event(0, index=0),
            make_event(0.5, "Timeout", "LogicException", index=1),
            make_event(10, index=2),
            make_event(10.1, "Disk full", "IOException", index=3),
        ]
        aggregator, groups = analyze(events)
        data = render(aggregator.snapshot(), groups, events=events).to_dict()

        assert [g["trigger"]["source"] for g in data["groups"]] == ["app.log:1", "app.log:3"]
        assert data["groups"][0]["reason"] == CorrelationReason.TIME_PROXIMITY.value
        assert data["groups"][0]["trigger"]["timestamp"] == T0.isoformat()


class TestBuildReportNode:
    """Tests for build_report_node function."""

    def test_without_analysis_results(self):
        """Test the node copes with a run that skipped analysis."""
        state = build_report_node({
            "settings": AnalysisSettings(),
            "events": [],
            "file_outcomes": [FileOutcome("a.log")],
            "metadata": {"files_total": 1},
        })

        report = state["report"]
        assert report.total_events == 0
        assert report.metadata["files_total"] == 1
        assert len(report.files) == 1

    def test_passes_analysis_results(self):
        """Test the node passes analysis results through."""
        bucket = FrequencyBucket(
            signature=make_event(0).signature,
            window_start=T0,
            count=1,
            first_seen=T0,
            last_seen=T0,
        )
        group = CorrelationGroup(
            events=(make_event(0),),
            trigger=make_event(0),
            reason=CorrelationReason.SINGLETON,
        )
        state = build_report_node({
            "settings": AnalysisSettings(),
            "buckets": [bucket],
            "groups": [group],
        })

        assert state["report"].singleton_count == 1
        assert state["report"].top_signatures[0].trend == "new"
