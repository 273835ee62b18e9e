"""
LangGraph State Machine for the log analysis pipeline.

Defines the graph structure with nodes and edges for reading and parsing
logs, aggregating error frequencies, correlating incidents and building
the report.
"""

import logging
from typing import Any, Literal, Optional, Sequence, TypedDict

from langgraph.graph import StateGraph, END

from .models.analysis import CorrelationGroup, FrequencyBucket, SignatureStats
from .models.parsed_event import ParsedEvent
from .models.report import FileOutcome, Report
from .nodes.correlator import Correlator, correlate_events_node
from .nodes.frequency import FrequencyAggregator, aggregate_frequency_node
from .nodes.log_parser import parse_logs_node
from .nodes.report_generator import build_report_node
from .parsers import FormatDetector, default_detector
from .utils.config import AnalysisSettings, get_config


logger = logging.getLogger(__name__)


class AnalysisState(TypedDict, total=False):
    """
    State for the analysis graph.

    This state flows through all nodes and accumulates results as
    processing progresses.
    """
    # Input
    paths: list[str]                        # Log files to analyze
    settings: AnalysisSettings
    detector: FormatDetector

    # Run-owned components
    aggregator: FrequencyAggregator
    correlator: Correlator

    # Parsed data
    events: list[ParsedEvent]               # All events, file then record order
    file_outcomes: list[FileOutcome]
    truncated: bool                         # A read budget stopped some file early

    # Analysis results
    buckets: list[FrequencyBucket]
    signature_stats: list[SignatureStats]
    groups: list[CorrelationGroup]

    # Output
    metadata: dict[str, Any]
    report: Report


def has_analyzable_events(state: AnalysisState) -> Literal["analyze", "report"]:
    """
    Determine if there is anything for frequency and correlation analysis.
    """
    settings = state["settings"]
    for event in state.get("events", []):
        if event.is_analyzable and event.severity >= settings.min_severity:
            return "analyze"
    return "report"


def create_analysis_graph() -> StateGraph:
    """
    Create the LangGraph state machine for one analysis run.

    Graph structure:

    START -> parse_logs -> aggregate_frequency -> correlate_events -> build_report -> END
                  |                                                     ^
                  +------------------ (nothing analyzable) -------------+
    """
    graph = StateGraph(AnalysisState)

    # Add nodes
    graph.add_node("parse_logs", parse_logs_node)
    graph.add_node("aggregate_frequency", aggregate_frequency_node)
    graph.add_node("correlate_events", correlate_events_node)
    graph.add_node("build_report", build_report_node)

    # Define edges
    graph.set_entry_point("parse_logs")

    graph.add_conditional_edges(
        "parse_logs",
        has_analyzable_events,
        {
            "analyze": "aggregate_frequency",
            "report": "build_report",
        }
    )

    # Aggregation and correlation run one after the other over the same events
    graph.add_edge("aggregate_frequency", "correlate_events")
    graph.add_edge("correlate_events", "build_report")
    graph.add_edge("build_report", END)

    return graph


def compile_pipeline():
    """
    Compile the analysis graph for execution.

    Returns:
        Compiled LangGraph that can be invoked
    """
    return create_analysis_graph().compile()


class AnalysisRun:
    """
    Context for one analysis run.

    Owns the frequency aggregator and correlator for the duration of the
    run and disposes them on exit:

        with AnalysisRun(settings) as run:
            report = run.run(["app.log", "php_errors.log"])
    """

    def __init__(self, settings: AnalysisSettings, detector: Optional[FormatDetector] = None):
        self.settings = settings
        self.detector = detector or default_detector()
        self.aggregator: Optional[FrequencyAggregator] = None
        self.correlator: Optional[Correlator] = None
        self.state: Optional[AnalysisState] = None

    def __enter__(self) -> "AnalysisRun":
        self.aggregator = FrequencyAggregator(
            window=self.settings.bucket_window,
            spike_multiplier=self.settings.spike_multiplier,
            min_history_windows=self.settings.min_history_windows,
        )
        self.correlator = Correlator(
            proximity_window=self.settings.correlation_window,
            max_cascade_kinds=self.settings.max_cascade_kinds,
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def dispose(self) -> None:
        if self.aggregator is not None:
            self.aggregator.dispose()
        if self.correlator is not None:
            self.correlator.dispose()

    def run(self, paths: Sequence[str]) -> Report:
        """
        Analyze the given files.

        Raises:
            RuntimeError: If the run has not been entered
        """
        if self.aggregator is None or self.correlator is None:
            raise RuntimeError("AnalysisRun must be used as a context manager")

        initial_state = AnalysisState(
            paths=[str(p) for p in paths],
            settings=self.settings,
            detector=self.detector,
            aggregator=self.aggregator,
            correlator=self.correlator,
            metadata={
                "bucket_window_seconds": self.settings.bucket_window.total_seconds(),
                "correlation_window_seconds": self.settings.correlation_window.total_seconds(),
                "spike_multiplier": self.settings.spike_multiplier,
                "min_severity": self.settings.min_severity.name,
                **self.settings.metadata,
            },
        )

        pipeline = compile_pipeline()
        self.state = pipeline.invoke(initial_state)

        report: Report = self.state["report"]
        logger.info(
            "Analyzed %d file(s): %d events, %d groups",
            len(report.files), report.total_events, len(report.groups),
        )
        return report


def run_analysis(paths: Sequence[str], settings: Optional[AnalysisSettings] = None) -> Report:
    """
    Run a complete analysis over the given files.

    This is a convenience function wrapping AnalysisRun.

    Args:
        paths: Log files to analyze
        settings: Analysis settings (from configuration when omitted)

    Returns:
        Report
    """
    settings = settings or get_config().to_settings()
    with AnalysisRun(settings) as run:
        return run.run(paths)
