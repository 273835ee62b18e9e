"""
Frequency Aggregator.

Buckets events per error signature into epoch-aligned time windows and
classifies each signature's latest complete window against its own history.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.analysis import FrequencyBucket, SignatureStats, Trend
from ..models.parsed_event import ErrorSignature, ParsedEvent


logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DECLINE_RATIO = 0.5


@dataclass
class _SignatureCounts:
    windows: Dict[datetime, FrequencyBucket]
    first_window: datetime
    total: int = 0


class FrequencyAggregator:
    """
    Per-signature event counts over fixed windows.

    Usage:
        aggregator = FrequencyAggregator(timedelta(hours=1))
        for event in events:
            aggregator.observe(event)
        aggregator.trend(signature)

    The aggregator is owned by one analysis run; call dispose() when the
    run is over.
    """

    def __init__(
        self,
        window: timedelta = timedelta(hours=1),
        spike_multiplier: float = 3.0,
        min_history_windows: int = 2,
    ):
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self.window = window
        self.spike_multiplier = spike_multiplier
        self.min_history_windows = min_history_windows

        self._events: List[ParsedEvent] = []
        self._last_key: Optional[Tuple[datetime, Tuple[int, int]]] = None
        self._needs_sort = False
        self._index: Optional[Dict[ErrorSignature, _SignatureCounts]] = None
        self._cancelled = False
        self._disposed = False

        self.rejected = 0           # Events without a timestamp
        self.out_of_order = 0

    # -----------------------------
    # INPUT
    # -----------------------------

    def observe(self, event: ParsedEvent) -> bool:
        """
        Count an event.

        Returns:
            False if the event has no timestamp and was not counted
        """
        self._check_open()
        if not event.is_analyzable:
            self.rejected += 1
            return False

        key = event.sort_key
        if self._last_key is not None and key < self._last_key:
            self.out_of_order += 1
            self._needs_sort = True
        else:
            self._last_key = key

        self._events.append(event)
        self._index = None
        return True

    def observe_all(self, events: Iterable[ParsedEvent]) -> int:
        return sum(1 for event in events if self.observe(event))

    def mark_cancelled(self) -> None:
        """The run stopped early; the final window's buckets are incomplete."""
        self._cancelled = True

    def dispose(self) -> None:
        """Release observed events; the aggregator cannot be used afterwards."""
        self._events.clear()
        self._index = None
        self._disposed = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _check_open(self) -> None:
        if self._disposed:
            raise RuntimeError("FrequencyAggregator has been disposed")

    # -----------------------------
    # WINDOWS
    # -----------------------------

    def window_start(self, timestamp: datetime) -> datetime:
        """Start of the epoch-aligned window containing timestamp."""
        elapsed = timestamp - EPOCH
        return EPOCH + self.window * (elapsed // self.window)

    def _build_index(self) -> Dict[ErrorSignature, _SignatureCounts]:
        if self._index is not None:
            return self._index

        if self._needs_sort:
            logger.debug("Sorting %d events after %d out-of-order arrivals", len(self._events), self.out_of_order)
            self._events.sort(key=lambda e: e.sort_key)
            self._needs_sort = False
            self._last_key = self._events[-1].sort_key if self._events else None

        index: Dict[ErrorSignature, _SignatureCounts] = {}
        for event in self._events:
            start = self.window_start(event.timestamp)
            counts = index.get(event.signature)
            if counts is None:
                counts = index[event.signature] = _SignatureCounts(windows={}, first_window=start)

            bucket = counts.windows.get(start)
            if bucket is None:
                counts.windows[start] = FrequencyBucket(
                    signature=event.signature,
                    window_start=start,
                    count=1,
                    first_seen=event.timestamp,
                    last_seen=event.timestamp,
                )
            else:
                bucket.count += 1
                bucket.last_seen = max(bucket.last_seen, event.timestamp)
            counts.total += 1

        self._index = index
        return index

    @property
    def last_window(self) -> Optional[datetime]:
        """Window containing the latest timestamp of the run."""
        self._check_open()
        self._build_index()
        if not self._events:
            return None
        return self.window_start(self._events[-1].timestamp)

    @property
    def evaluated_window(self) -> Optional[datetime]:
        """
        Most recent complete window, the one trends are computed for.

        This is the last window unless the run was cancelled, in which case
        the last window is only partially counted and the one before it is
        evaluated instead.
        """
        last = self.last_window
        if last is None or not self._cancelled:
            return last
        return last - self.window

    # -----------------------------
    # OUTPUT
    # -----------------------------

    def snapshot(self) -> List[FrequencyBucket]:
        """All buckets, ordered by window then signature."""
        self._check_open()
        index = self._build_index()
        latest = self.last_window

        buckets = []
        for counts in index.values():
            for bucket in counts.windows.values():
                buckets.append(
                    FrequencyBucket(
                        signature=bucket.signature,
                        window_start=bucket.window_start,
                        count=bucket.count,
                        first_seen=bucket.first_seen,
                        last_seen=bucket.last_seen,
                        complete=not (self._cancelled and bucket.window_start == latest),
                    )
                )
        buckets.sort(key=lambda b: (b.window_start, b.signature.key))
        return buckets

    def _history(self, signature: ErrorSignature) -> Tuple[int, int, float]:
        """(latest count, history window count, history mean) for a signature."""
        counts = self._build_index().get(signature)
        latest = self.evaluated_window
        if counts is None or latest is None:
            return 0, 0, 0.0

        if counts.first_window > latest:
            # Only seen in the incomplete window of a cancelled run
            return sum(b.count for b in counts.windows.values()), 0, 0.0

        latest_bucket = counts.windows.get(latest)
        latest_count = latest_bucket.count if latest_bucket else 0

        # Empty windows between the first sighting and the evaluated window count as zero
        history_windows = int((latest - counts.first_window) // self.window)
        history_total = sum(b.count for start, b in counts.windows.items() if start < latest)
        mean = history_total / history_windows if history_windows else 0.0
        return latest_count, history_windows, mean

    def classify_counts(self, latest_count: int, history_windows: int, mean: float) -> Trend:
        if latest_count == 0:
            return Trend.DECLINING
        if history_windows < self.min_history_windows:
            return Trend.NEW
        if latest_count > self.spike_multiplier * mean:
            return Trend.SPIKE
        if latest_count < DECLINE_RATIO * mean:
            return Trend.DECLINING
        return Trend.STEADY

    def trend(self, signature: ErrorSignature) -> Trend:
        """Trend of a signature in the evaluated window."""
        self._check_open()
        return self.classify_counts(*self._history(signature))

    def is_spike(self, signature: ErrorSignature) -> bool:
        return self.trend(signature) is Trend.SPIKE

    def summaries(self) -> List[SignatureStats]:
        """Per-signature statistics, most frequent first."""
        self._check_open()
        index = self._build_index()

        stats = []
        for signature, counts in index.items():
            latest_count, history_windows, mean = self._history(signature)
            buckets = counts.windows.values()
            stats.append(
                SignatureStats(
                    signature=signature,
                    total_count=counts.total,
                    latest_count=latest_count,
                    history_windows=history_windows,
                    baseline_mean=mean,
                    trend=self.classify_counts(latest_count, history_windows, mean),
                    first_seen=min(b.first_seen for b in buckets),
                    last_seen=max(b.last_seen for b in buckets),
                )
            )

        stats.sort(key=lambda s: (-s.total_count, s.signature.key))
        return stats


def aggregate_frequency_node(state: dict[str, Any]) -> dict[str, Any]:
    """
    LangGraph node for frequency aggregation.

    Expects state to contain:
        - events, settings, aggregator (owned by the run)

    Updates state with:
        - buckets: list[FrequencyBucket]
        - signature_stats: list[SignatureStats]
    """
    settings = state["settings"]
    aggregator: FrequencyAggregator = state["aggregator"]

    for event in state.get("events", []):
        if event.severity >= settings.min_severity:
            aggregator.observe(event)

    if state.get("truncated"):
        aggregator.mark_cancelled()

    return {
        **state,
        "buckets": aggregator.snapshot(),
        "signature_stats": aggregator.summaries(),
    }
