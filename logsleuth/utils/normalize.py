"""
Message normalization.

Turns a raw log message into a stable message pattern by stripping the
values that vary between occurrences of the same error (numbers, UUIDs,
quoted values, addresses).
"""

import re
from typing import List, Optional, Tuple

from ..models.parsed_event import ErrorSignature


# Ordered normalization rules.
# Order matters: quoted values and structured tokens must go before plain numbers.
NORMALIZATION_RULES: List[Tuple[re.Pattern, str]] = [
    # Double-quoted values
    (re.compile(r'"(?:[^"\\\n]|\\.)*"'), '"<STR>"'),

    # Single-quoted values (not apostrophes inside words)
    (re.compile(r"(?<![\w'])'(?:[^'\\\n]|\\.)*'(?!\w)"), "'<STR>'"),

    # UUIDs (canonical)
    (
        re.compile(
            r"\b[0-9a-f]{8}-[0-9a-f]{4}-"
            r"[0-9a-f]{4}-[0-9a-f]{4}-"
            r"[0-9a-f]{12}\b",
            re.IGNORECASE,
        ),
        "<UUID>",
    ),

    # IPv4 addresses
    (re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b"), "<IP>"),

    # Hex literals and memory addresses
    (re.compile(r"\b0x[0-9a-f]+\b", re.IGNORECASE), "<HEX>"),

    # Hashes and tokens: long hex runs with at least one letter and one digit
    (
        re.compile(
            r"\b(?=[0-9a-f]*[a-f])(?=[0-9a-f]*\d)[0-9a-f]{16,}\b",
            re.IGNORECASE,
        ),
        "<HEX>",
    ),

    # Numbers, keeping a trailing unit (5000ms -> <NUM>ms)
    (
        re.compile(
            r"\b\d+(?:\.\d+)?(?=(?:ms|us|ns|s|kb|mb|gb|b)?\b)",
            re.IGNORECASE,
        ),
        "<NUM>",
    ),
]

WHITESPACE = re.compile(r"\s+")


def normalize_message(message: Optional[str]) -> str:
    """
    Normalize a log message into a stable pattern.

    This function is deterministic, side-effect free and idempotent:
    normalizing an already normalized message returns it unchanged.
    """
    if not message:
        return ""

    normalized = message

    for pattern, token in NORMALIZATION_RULES:
        normalized = pattern.sub(token, normalized)

    normalized = WHITESPACE.sub(" ", normalized).strip()

    return normalized


def make_signature(exception_kind: Optional[str], message: Optional[str]) -> ErrorSignature:
    """Build the error signature for an exception kind and raw message."""
    return ErrorSignature(kind=exception_kind or None, pattern=normalize_message(message))
