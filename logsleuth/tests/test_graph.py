"""
Tests for the analysis pipeline.
"""

import pytest

from logsleuth.graph import AnalysisRun, create_analysis_graph, has_analyzable_events, run_analysis
from logsleuth.models.parsed_event import Severity
from logsleuth.nodes.log_parser import parse_logs_node
from logsleuth.utils.config import AnalysisSettings


APP_LOG = "\n".join([
    '[2024-01-15T10:30:00.100000+00:00] app.ERROR: SQLSTATE[HY000] [2002] Connection refused [] {"request_id":"req-1"}',
    '[2024-01-15T10:30:00.300000+00:00] app.CRITICAL: Order 42 could not be saved [] {"request_id":"req-1"}',
    "[2024-01-15T10:30:05+00:00] app.INFO: Retrying [] []",
    "[2024-01-15T11:45:00+00:00] app.ERROR: SQLSTATE[HY000] [2002] Connection refused [] []",
]) + "\n"

PHP_ERRORS = "\n".join([
    "[15-Jan-2024 10:30:00 UTC] PHP Warning:  Undefined array key \"id\" in /var/www/html/src/Controller/OrderController.php on line 51",
    "[15-Jan-2024 12:00:00 UTC] PHP Fatal error:  Allowed memory size of 134217728 bytes exhausted in /var/www/html/vendor/twig/twig/src/Environment.php on line 359",
]) + "\n"


@pytest.fixture
def log_files(tmp_path):
    app = tmp_path / "app.log"
    php = tmp_path / "php_errors.log"
    corrupt = tmp_path / "corrupt.log"
    app.write_text(APP_LOG)
    php.write_text(PHP_ERRORS)
    corrupt.write_bytes(b"\x00\x00\x00garbage\x00")
    return app, corrupt, php


class TestGraphStructure:
    """Tests for graph construction."""

    def test_nodes(self):
        graph = create_analysis_graph()
        assert set(graph.nodes) == {"parse_logs", "aggregate_frequency", "correlate_events", "build_report"}

    def test_routing(self, tmp_path):
        """Test analysis is skipped when no event reaches the threshold."""
        log = tmp_path / "app.log"
        log.write_text("[2024-01-15T10:30:05+00:00] app.INFO: Retrying [] []\n")
        state = parse_logs_node({"paths": [str(log)], "settings": AnalysisSettings()})

        assert has_analyzable_events(state) == "report"
        verbose = {**state, "settings": AnalysisSettings(min_severity=Severity.INFO)}
        assert has_analyzable_events(verbose) == "analyze"


class TestAnalysisRun:
    """End-to-end tests for AnalysisRun and run_analysis."""

    def test_mixed_inputs(self, log_files):
        """Test a failed file does not stop the others."""
        app, corrupt, php = log_files
        report = run_analysis([app, corrupt, php], AnalysisSettings())

        assert [f.status.value for f in report.files] == ["ok", "failed", "ok"]
        assert len(report.failed_files) == 1
        assert report.total_events == 6
        assert report.severity_counts == {"CRITICAL": 2, "ERROR": 2, "WARNING": 1, "INFO": 1}

        # The two req-1 events form one incident
        assert len(report.groups) == 1
        by_id = [g for g in report.groups if g.correlation_id == "req-1"]
        assert len(by_id) == 1
        assert by_id[0].size == 2

        top = report.top_signatures[0]
        assert top.count == 2
        assert top.sample_message == "SQLSTATE[HY000] [2002] Connection refused"
        assert top.primary_location is None

    def test_all_files_failed(self, tmp_path):
        """Test a run where nothing could be read."""
        report = run_analysis([tmp_path / "missing.log"], AnalysisSettings())

        assert report.total_events == 0
        assert report.top_signatures == []
        assert report.failed_files[0].error

    def test_nothing_analyzable(self, tmp_path):
        """Test the report is built without analysis when only low severities exist."""
        log = tmp_path / "app.log"
        log.write_text("[2024-01-15T10:30:05+00:00] app.INFO: Retrying [] []\n")

        with AnalysisRun(AnalysisSettings()) as run:
            report = run.run([log])

        assert report.total_events == 1
        assert report.top_signatures == []
        assert "buckets" not in run.state or not run.state["buckets"]

    def test_components_disposed_after_run(self, log_files):
        """Test the aggregator and correlator are unusable after exit."""
        app, _, _ = log_files
        with AnalysisRun(AnalysisSettings()) as run:
            run.run([app])

        with pytest.raises(RuntimeError):
            run.aggregator.observe(run.state["events"][0])
        with pytest.raises(RuntimeError):
            run.correlator.correlate([])

    def test_run_requires_context(self, log_files):
        app, _, _ = log_files
        with pytest.raises(RuntimeError):
            AnalysisRun(AnalysisSettings()).run([app])

    def test_read_budget(self, log_files):
        """Test a budget marks the read truncated and the last window incomplete."""
        app, _, _ = log_files
        with AnalysisRun(AnalysisSettings(max_lines=2)) as run:
            report = run.run([app])

        assert report.files[0].truncated is True
        assert report.files[0].lines_read == 2
        assert run.state["truncated"] is True
        assert run.state["buckets"][-1].complete is False

    def test_metadata(self, log_files):
        """Test run settings are recorded in the report metadata."""
        app, _, _ = log_files
        settings = AnalysisSettings(metadata={"host": "web-1"})
        report = run_analysis([app], settings)

        assert report.metadata["host"] == "web-1"
        assert report.metadata["bucket_window_seconds"] == 3600.0
        assert report.metadata["min_severity"] == "WARNING"
        assert report.metadata["files_total"] == 1
