"""Template engine: {{context.path}} expansion and nested path resolution.

Unresolvable placeholders render as an empty string (or the inline
``| default``) so optional configuration fields never abort a run.
"""

from __future__ import annotations

import json
import re
from typing import Any

# Matches {{path.to.var}}, {{context.items[0].name}} or {{path | default_value}}
_TEMPLATE_RE = re.compile(r"\{\{\s*([^{}|]+?)\s*(?:\|\s*([^{}]*?))?\s*\}\}")
_BRACKET_RE = re.compile(r"\[\s*['\"]?([^\]'\"]+)['\"]?\s*\]")

CONTEXT_PREFIX = "context"


def split_path(path: str) -> list[str]:
    """'a.items[0].b' -> ['a', 'items', '0', 'b']"""
    normalized = _BRACKET_RE.sub(r".\1", path.strip())
    return [part for part in normalized.split(".") if part]


def resolve_path(path: str, ctx: dict[str, Any]) -> Any:
    """Resolve a dotted path like 'context.formData.email' against a context dict.

    A leading ``context.`` segment refers to the context itself unless the
    context carries its own ``context`` key.
    """
    parts = split_path(path)
    if parts and parts[0] == CONTEXT_PREFIX and CONTEXT_PREFIX not in ctx:
        parts = parts[1:]
    if not parts:
        return ctx
    current: Any = ctx
    for part in parts:
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part in ("length", "len", "count"):
            current = len(current)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            current = current[idx] if -len(current) <= idx < len(current) else None
        elif isinstance(current, str) and part == "length":
            current = len(current)
        else:
            return None
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    """String form used when a value is substituted into a template."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def has_template(value: Any) -> bool:
    return isinstance(value, str) and _TEMPLATE_RE.search(value) is not None


def single_placeholder(value: str) -> str | None:
    """Return the path when *value* is exactly one placeholder, else None."""
    match = _TEMPLATE_RE.fullmatch(value.strip())
    if match and not match.group(2):
        return match.group(1)
    return None


def render_template_str(template: str, ctx: dict[str, Any]) -> str:
    """Replace all {{path}} placeholders in a string with values from ctx."""
    if not isinstance(template, str):
        return template

    def replacer(match: re.Match) -> str:
        path = match.group(1)
        default = match.group(2) or ""
        value = resolve_path(path, ctx)
        if value is None:
            return default.strip().strip("'\"")
        return stringify(value)

    return _TEMPLATE_RE.sub(replacer, template)


def render_template_dict(data: dict[str, Any], ctx: dict[str, Any]) -> dict[str, Any]:
    """Recursively render templates in all string values of a dict."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        result[key] = resolve(value, ctx)
    return result


def resolve(value: Any, ctx: dict[str, Any]) -> Any:
    """Recursively render templates in any value.  Pure; never raises."""
    if isinstance(value, str):
        return render_template_str(value, ctx)
    if isinstance(value, dict):
        return render_template_dict(value, ctx)
    if isinstance(value, list):
        return [resolve(item, ctx) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve(item, ctx) for item in value)
    return value
