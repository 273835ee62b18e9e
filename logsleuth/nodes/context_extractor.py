"""
Context Extractor.

Pulls request metadata (URL, method, user, correlation id, client ip,
session id) out of format-specific context keys into a RequestContext.
Parsers flatten context with "context." and "extra." prefixes, so the
tables below name flattened keys.
"""

from typing import Dict, Optional, Tuple

from ..models.parsed_event import ContextValue, ParsedEvent, RequestContext


# Logical field -> raw keys, most specific first
MONOLOG_FIELDS: Dict[str, Tuple[str, ...]] = {
    "url": ("extra.url", "context.url", "extra.uri", "context.uri", "context.request_uri"),
    "method": ("extra.http_method", "context.method", "extra.method", "context.http_method"),
    "user_id": ("context.userId", "context.user_id", "extra.user_id", "extra.user", "context.user.id"),
    "correlation_id": (
        "extra.correlation_id",
        "context.correlation_id",
        "extra.request_id",
        "context.request_id",
        "extra.unique_id",
        "extra.uid",
        "extra.trace_id",
        "context.trace_id",
    ),
    "client_ip": ("extra.ip", "context.ip", "extra.client_ip", "context.client_ip"),
    "session_id": ("extra.session_id", "context.session_id", "extra.session"),
}

# Structured loggers add ECS / OpenTelemetry style top-level keys
STRUCTURED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "url": MONOLOG_FIELDS["url"] + ("url.full", "url.path", "url", "request_uri"),
    "method": MONOLOG_FIELDS["method"] + ("http.request.method", "method"),
    "user_id": MONOLOG_FIELDS["user_id"] + ("user.id", "user_id"),
    "correlation_id": MONOLOG_FIELDS["correlation_id"] + (
        "correlation_id",
        "request_id",
        "trace.id",
        "trace_id",
    ),
    "client_ip": MONOLOG_FIELDS["client_ip"] + ("client.ip", "source.ip", "client_ip"),
    "session_id": MONOLOG_FIELDS["session_id"] + ("session.id", "session_id"),
}

FIELD_TABLE: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "structured-json": STRUCTURED_FIELDS,
    "framework-line": MONOLOG_FIELDS,
    "bracketed-line": MONOLOG_FIELDS,
    # error_log records carry no request context
    "plain-fatal": {},
    "slow-log": {},
}

FIELDS = ("url", "method", "user_id", "correlation_id", "client_ip", "session_id")


def _as_text(value: ContextValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def _lookup(context: Dict[str, ContextValue], keys: Tuple[str, ...]) -> Optional[str]:
    """
    First non-empty value among keys.

    Returns "" when at least one key is present but all present values are
    empty, and None when no key is present.
    """
    seen_empty = False
    for key in keys:
        if key not in context:
            continue
        text = _as_text(context[key])
        if text:
            return text
        seen_empty = True
    return "" if seen_empty else None


def extract(event: ParsedEvent, format_hint: Optional[str] = None) -> RequestContext:
    """
    Map an event's context onto a RequestContext.

    Args:
        event: Parsed event whose flat context is read
        format_hint: Format whose field table applies (defaults to the
            event's source format)

    Returns:
        RequestContext; fields absent from the context are None
    """
    table = FIELD_TABLE.get(format_hint or event.source_format, MONOLOG_FIELDS)
    values = {name: _lookup(event.context, table.get(name, ())) for name in FIELDS}
    return RequestContext(**values)


def enrich(event: ParsedEvent, format_hint: Optional[str] = None) -> ParsedEvent:
    """Attach the extracted RequestContext to the event (in place)."""
    event.request = extract(event, format_hint)
    return event

