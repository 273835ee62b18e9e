"""
Correlator.

Groups events into incidents:
1. Events sharing a correlation id belong together regardless of time.
2. Remaining events are grouped by time proximity to the group's first event.
3. Within a group, the earliest event is the trigger; later events whose kind
   differs from the trigger's are cascades and repeats of the trigger's kind
   are duplicates.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from ..models.analysis import CorrelationGroup, CorrelationReason
from ..models.parsed_event import ParsedEvent


logger = logging.getLogger(__name__)


def event_kind(event: ParsedEvent) -> str:
    """Exception kind, or the signature key for events without one."""
    return event.exception_kind or event.signature.key


class Correlator:
    """
    Groups related events.

    The result is deterministic for a given input: groups are ordered by
    their trigger's (timestamp, sequence) and no step depends on hash
    ordering.
    """

    def __init__(
        self,
        proximity_window: timedelta = timedelta(seconds=1),
        max_cascade_kinds: Optional[int] = None,
    ):
        if proximity_window < timedelta(0):
            raise ValueError("proximity_window must not be negative")
        self.proximity_window = proximity_window
        self.max_cascade_kinds = max_cascade_kinds
        self._disposed = False

    def dispose(self) -> None:
        self._disposed = True

    def correlate(self, events: Sequence[ParsedEvent]) -> List[CorrelationGroup]:
        """
        Group events into incidents.

        Events without a timestamp are ignored. Every analyzable event ends
        up in exactly one group; events that relate to nothing form
        singleton groups.
        """
        if self._disposed:
            raise RuntimeError("Correlator has been disposed")

        ordered = sorted((e for e in events if e.is_analyzable), key=lambda e: e.sort_key)
        groups: List[CorrelationGroup] = []

        # Pass 1: shared correlation id, in order of first appearance
        by_id: Dict[str, List[ParsedEvent]] = {}
        remaining: List[ParsedEvent] = []
        for event in ordered:
            correlation_id = event.correlation_id
            if correlation_id:
                by_id.setdefault(correlation_id, []).append(event)
            else:
                remaining.append(event)

        leftovers: List[ParsedEvent] = []
        for correlation_id, members in by_id.items():
            if len(members) > 1:
                groups.append(self._refine(members, CorrelationReason.CORRELATION_ID, correlation_id))
            else:
                leftovers.extend(members)

        if leftovers:
            remaining = sorted(remaining + leftovers, key=lambda e: e.sort_key)

        # Pass 2: time proximity, anchored on the group's first event
        current: List[ParsedEvent] = []
        for event in remaining:
            if current and event.timestamp - current[0].timestamp <= self.proximity_window:
                current.append(event)
                continue
            self._close(current, groups)
            current = [event]
        self._close(current, groups)

        groups.sort(key=lambda g: g.trigger.sort_key)
        logger.debug("Correlated %d events into %d groups", len(ordered), len(groups))
        return groups

    def _close(self, members: List[ParsedEvent], groups: List[CorrelationGroup]) -> None:
        if not members:
            return
        if len(members) == 1:
            groups.append(self._refine(members, CorrelationReason.SINGLETON))
        else:
            groups.append(self._refine(members, CorrelationReason.TIME_PROXIMITY))

    def _refine(
        self,
        members: List[ParsedEvent],
        reason: CorrelationReason,
        correlation_id: Optional[str] = None,
    ) -> CorrelationGroup:
        """Pick the trigger and split later events into cascades and duplicates."""
        trigger = members[0]
        trigger_kind = event_kind(trigger)
        cascade_kinds = set()
        cascades: List[ParsedEvent] = []
        duplicates: List[ParsedEvent] = []

        for event in members[1:]:
            kind = event_kind(event)
            if kind == trigger_kind:
                duplicates.append(event)
                continue
            # The cap limits distinct kinds; more events of an admitted kind stay cascades
            if (
                kind in cascade_kinds
                or self.max_cascade_kinds is None
                or len(cascade_kinds) < self.max_cascade_kinds
            ):
                cascade_kinds.add(kind)
                cascades.append(event)
            else:
                duplicates.append(event)

        return CorrelationGroup(
            events=tuple(members),
            trigger=trigger,
            reason=reason,
            cascades=tuple(cascades),
            duplicates=tuple(duplicates),
            correlation_id=correlation_id,
        )


def correlate_events_node(state: dict[str, Any]) -> dict[str, Any]:
    """
    LangGraph node for correlation.

    Expects state to contain:
        - events, settings, correlator (owned by the run)

    Updates state with:
        - groups: list[CorrelationGroup]
    """
    settings = state["settings"]
    correlator: Correlator = state["correlator"]

    candidates = [e for e in state.get("events", []) if e.severity >= settings.min_severity]
    return {**state, "groups": correlator.correlate(candidates)}
