"""
Shared fixtures.
"""

import pytest

from logsleuth.utils.config import Config


ENV_VARS = (
    "LOGSLEUTH_VENDOR_PREFIXES",
    "LOGSLEUTH_PROJECT_ROOTS",
    "LOGSLEUTH_BUCKET_WINDOW",
    "LOGSLEUTH_CORRELATION_WINDOW",
    "LOGSLEUTH_SPIKE_MULTIPLIER",
    "LOGSLEUTH_MIN_HISTORY_WINDOWS",
    "LOGSLEUTH_MIN_SEVERITY",
    "LOGSLEUTH_TOP_N",
    "LOGSLEUTH_MAX_WORKERS",
    "LOGSLEUTH_LOG_LEVEL",
)


@pytest.fixture
def clean_config(tmp_path, monkeypatch):
    """Fresh Config reading an empty environment, away from any .env file."""
    for name in ENV_VARS:
        # setenv registers the variable, so values loaded from .env are removed on teardown
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    Config.reset()
    yield tmp_path
    Config.reset()
