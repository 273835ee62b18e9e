"""
Configuration management for logsleuth.

Loads settings from environment variables and .env file, and turns them into
the immutable AnalysisSettings consumed by one analysis run.
"""

import os
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from ..models.parsed_event import Severity


DEFAULT_VENDOR_PREFIXES: Tuple[str, ...] = (
    "vendor",
    "var/cache",
    "bootstrap/cache",
    "storage/framework",
    "node_modules",
    "/usr/share/php",
    "phar:",
)

DEFAULT_PROJECT_ROOTS: Tuple[str, ...] = (
    "/var/www/html",
    "/var/www",
    "/usr/src/app",
    "/srv/app",
    "/app",
    "/code",
)

_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as "500ms", "1s", "30m", "1h", "1d" or "90".

    Plain numbers are seconds.

    Raises:
        ValueError: If the value is not a positive duration
    """
    m = _DURATION_RE.match(str(value))
    if not m:
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. 500ms, 1s, 30m, 1h)")

    unit = (m.group("unit") or "s").lower()
    duration = _DURATION_UNITS[unit] * float(m.group("value"))
    if duration <= timedelta(0):
        raise ValueError(f"Duration must be positive: {value!r}")
    return duration


def _split_list(value: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class AnalysisSettings:
    """
    Options recognized by the analysis engine for one run.
    """

    vendor_prefixes: Tuple[str, ...] = DEFAULT_VENDOR_PREFIXES
    project_roots: Tuple[str, ...] = DEFAULT_PROJECT_ROOTS
    bucket_window: timedelta = timedelta(hours=1)
    correlation_window: timedelta = timedelta(seconds=1)
    spike_multiplier: float = 3.0
    min_history_windows: int = 2
    min_severity: Severity = Severity.WARNING
    max_cascade_kinds: Optional[int] = None
    top_n: int = 10
    max_workers: int = 4

    # Read budgets
    max_lines: Optional[int] = None
    max_bytes: Optional[int] = None
    grep_pattern: Optional[str] = None
    grep_context_lines: int = 20
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    metadata: dict = field(default_factory=dict)

    def with_overrides(self, **overrides) -> "AnalysisSettings":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


class Config:
    """
    Configuration manager for logsleuth.

    Loads configuration from environment variables, with fallback to .env file.
    """

    _instance: Optional["Config"] = None

    def __new__(cls) -> "Config":
        """Singleton pattern to ensure single config instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize configuration (only runs once due to singleton)."""
        if self._initialized:
            return

        # Find and load .env file
        self._load_env()

        # Stack frame classification
        self.vendor_prefixes = _split_list(
            os.getenv("LOGSLEUTH_VENDOR_PREFIXES"), DEFAULT_VENDOR_PREFIXES
        )
        self.project_roots = _split_list(
            os.getenv("LOGSLEUTH_PROJECT_ROOTS"), DEFAULT_PROJECT_ROOTS
        )

        # Frequency and correlation windows (kept raw, validated on use)
        self.bucket_window: str = os.getenv("LOGSLEUTH_BUCKET_WINDOW", "1h")
        self.correlation_window: str = os.getenv("LOGSLEUTH_CORRELATION_WINDOW", "1s")
        self.spike_multiplier: str = os.getenv("LOGSLEUTH_SPIKE_MULTIPLIER", "3.0")
        self.min_history_windows: str = os.getenv("LOGSLEUTH_MIN_HISTORY_WINDOWS", "2")
        self.min_severity: str = os.getenv("LOGSLEUTH_MIN_SEVERITY", "WARNING")

        # Output and execution
        self.top_n: str = os.getenv("LOGSLEUTH_TOP_N", "10")
        self.max_workers: str = os.getenv("LOGSLEUTH_MAX_WORKERS", "4")
        self.log_level: str = os.getenv("LOGSLEUTH_LOG_LEVEL", "WARNING")

        self._initialized = True

    def _load_env(self) -> None:
        """Load .env file if it exists."""
        # Try to find .env in current directory or parent directories
        current = Path.cwd()
        for _ in range(5):  # Search up to 5 levels up
            env_path = current / ".env"
            if env_path.exists():
                load_dotenv(env_path)
                return
            current = current.parent

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the environment is read again."""
        cls._instance = None

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of problems.

        Returns:
            List of invalid configuration items (empty if all valid)
        """
        problems = []

        for name in ("bucket_window", "correlation_window"):
            try:
                parse_duration(getattr(self, name))
            except ValueError as e:
                problems.append(f"LOGSLEUTH_{name.upper()} - {e}")

        try:
            if float(self.spike_multiplier) <= 1.0:
                problems.append("LOGSLEUTH_SPIKE_MULTIPLIER - must be greater than 1.0")
        except ValueError:
            problems.append(f"LOGSLEUTH_SPIKE_MULTIPLIER - not a number: {self.spike_multiplier!r}")

        for name, minimum in (("min_history_windows", 1), ("top_n", 1), ("max_workers", 1)):
            raw = getattr(self, name)
            if not raw.isdigit() or int(raw) < minimum:
                problems.append(f"LOGSLEUTH_{name.upper()} - expected an integer >= {minimum}, got {raw!r}")

        if self.min_severity.strip().upper() not in Severity.__members__:
            problems.append(
                f"LOGSLEUTH_MIN_SEVERITY - unknown level {self.min_severity!r} "
                f"(one of {', '.join(Severity.__members__)})"
            )

        if not self.vendor_prefixes:
            problems.append("LOGSLEUTH_VENDOR_PREFIXES - at least one prefix is required")

        return problems

    def to_settings(self, **overrides) -> AnalysisSettings:
        """
        Build the analysis settings, applying non-None overrides.

        Raises:
            ValueError: If the configuration is invalid
        """
        problems = self.validate()
        if problems:
            raise ValueError("Invalid configuration:\n  " + "\n  ".join(problems))

        settings = AnalysisSettings(
            vendor_prefixes=self.vendor_prefixes,
            project_roots=self.project_roots,
            bucket_window=parse_duration(self.bucket_window),
            correlation_window=parse_duration(self.correlation_window),
            spike_multiplier=float(self.spike_multiplier),
            min_history_windows=int(self.min_history_windows),
            min_severity=Severity[self.min_severity.strip().upper()],
            top_n=int(self.top_n),
            max_workers=int(self.max_workers),
        )
        return settings.with_overrides(**overrides)

    def __repr__(self) -> str:
        return (
            f"Config(\n"
            f"  vendor_prefixes={', '.join(self.vendor_prefixes)},\n"
            f"  project_roots={', '.join(self.project_roots)},\n"
            f"  bucket_window={self.bucket_window},\n"
            f"  correlation_window={self.correlation_window},\n"
            f"  spike_multiplier={self.spike_multiplier},\n"
            f"  min_history_windows={self.min_history_windows},\n"
            f"  min_severity={self.min_severity},\n"
            f"  top_n={self.top_n},\n"
            f"  max_workers={self.max_workers},\n"
            f"  log_level={self.log_level}\n"
            f")"
        )


def get_config() -> Config:
    """Get the configuration singleton."""
    return Config()
