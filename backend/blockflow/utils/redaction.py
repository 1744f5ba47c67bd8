"""
Redaction utilities for sanitizing sensitive data in logs and run traces.

Context values travel from form submissions, login responses and webhook
headers straight into traces, so anything that looks like a credential is
replaced before a trace or context snapshot leaves the engine.
"""
import re
from typing import Any


# Default sensitive field patterns (case-insensitive)
DEFAULT_SENSITIVE_PATTERNS = [
    re.compile(r"^.*password.*$", re.IGNORECASE),
    re.compile(r"^.*token.*$", re.IGNORECASE),
    re.compile(r"^.*api[_-]?key.*$", re.IGNORECASE),
    re.compile(r"^.*secret.*$", re.IGNORECASE),
    re.compile(r"^.*credential.*$", re.IGNORECASE),
    re.compile(r"^.*authorization.*$", re.IGNORECASE),
    re.compile(r"^.*signature.*$", re.IGNORECASE),
    re.compile(r"^.*private[_-]?key.*$", re.IGNORECASE),
    re.compile(r"^.*cookie.*$", re.IGNORECASE),
]

REDACTION_PLACEHOLDER = "***REDACTED***"
MASK_PLACEHOLDER = "***"


def _is_sensitive_key(key: str, patterns: list[re.Pattern] | None = None) -> bool:
    """Check if a key name matches any sensitive patterns."""
    check_patterns = patterns if patterns is not None else DEFAULT_SENSITIVE_PATTERNS
    return any(pattern.match(key) for pattern in check_patterns)


def redact_sensitive_data(
    data: Any,
    max_depth: int = 10,
    extra_patterns: list[re.Pattern] | None = None,
) -> Any:
    """
    Recursively redact sensitive fields from data structures.

    Args:
        data: Dict, list, or primitive value to redact
        max_depth: Maximum recursion depth to prevent infinite loops
        extra_patterns: Compiled patterns checked in addition to the defaults.

    Returns:
        Copy of data with sensitive fields redacted
    """
    if max_depth <= 0:
        return data

    patterns = DEFAULT_SENSITIVE_PATTERNS + list(extra_patterns or [])

    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if _is_sensitive_key(str(key), patterns):
                redacted[key] = REDACTION_PLACEHOLDER
            else:
                redacted[key] = redact_sensitive_data(value, max_depth - 1, extra_patterns)
        return redacted

    elif isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1, extra_patterns) for item in data]

    elif isinstance(data, tuple):
        return tuple(redact_sensitive_data(item, max_depth - 1, extra_patterns) for item in data)

    else:
        # Primitive types (str, int, float, bool, None) pass through
        return data


def mask_value(value: Any) -> Any:
    """Hide a user-entered value while keeping whether it was present."""
    if value is None or value == "":
        return value
    return MASK_PLACEHOLDER
