"""logsleuth: multi-format log analysis and incident correlation."""

__version__ = "0.1.0"
