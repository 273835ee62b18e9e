# Pipeline nodes package
from .log_parser import parse_logs_node, parse_file, parse_records
from .frequency import aggregate_frequency_node, FrequencyAggregator
from .correlator import correlate_events_node, Correlator
from .report_generator import build_report_node, render
from .context_extractor import extract
from .stack_classifier import StackFrameClassifier

__all__ = [
    "parse_logs_node",
    "parse_file",
    "parse_records",
    "aggregate_frequency_node",
    "FrequencyAggregator",
    "correlate_events_node",
    "Correlator",
    "build_report_node",
    "render",
    "extract",
    "StackFrameClassifier",
]
