"""Safe expression evaluator: no eval(), restricted to comparison ops."""

from __future__ import annotations

import operator
import re
from typing import Any

from blockflow.templating.engine import render_template_str, resolve_path, single_placeholder


def _contains(a: Any, b: Any) -> bool:
    if isinstance(a, str):
        return str(b) in a
    return hasattr(a, "__contains__") and b in a


def _is_empty(a: Any, _: Any = None) -> bool:
    return a is None or a == "" or a == [] or a == {}


# Supported comparison operators
_OPS = {
    "===": operator.eq,
    "!==": operator.ne,
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "contains": _contains,
    "not_contains": lambda a, b: not _contains(a, b),
    "starts_with": lambda a, b: str(a).startswith(str(b)),
    "ends_with": lambda a, b: str(a).endswith(str(b)),
    "is_empty": _is_empty,
    "is_not_empty": lambda a, _: not _is_empty(a),
    "in": lambda a, b: a in b if hasattr(b, "__contains__") else False,
}

# Pattern: left_operand operator right_operand
# e.g. "{{status}} == 'approved'"   or  "{{formData.age}} >= 18"
_EXPR_RE = re.compile(
    r"^(.+?)\s*(===|!==|==|!=|>=|<=|>|<)\s*(.+)$"
    r"|^(.+?)\s+(contains|not_contains|starts_with|ends_with|in)\s+(.+)$"
)

# Pattern for unary operators: "is_empty {{var}}"
_UNARY_RE = re.compile(r"^(is_empty|is_not_empty)\s+(.+)$")

# Boolean connectives, lowest precedence first
_OR_RE = re.compile(r"\s+(?:\|\||or)\s+")
_AND_RE = re.compile(r"\s+(?:&&|and)\s+")


def evaluate_condition(expr: str, ctx: dict[str, Any]) -> bool:
    """
    Evaluate a simple comparison expression safely.

    Supports:
      - {{var}} == 'literal'
      - {{var}} >= 5
      - {{var}} contains 'text'
      - is_empty {{var}}
      - a && b, a || b (and / or)
      - true / false / yes / no

    No arbitrary code execution: uses operator dispatch only.
    """
    expr = (expr or "").strip()
    if not expr:
        return False

    or_parts = _OR_RE.split(expr)
    if len(or_parts) > 1:
        return any(evaluate_condition(part, ctx) for part in or_parts)
    and_parts = _AND_RE.split(expr)
    if len(and_parts) > 1:
        return all(evaluate_condition(part, ctx) for part in and_parts)

    if expr.startswith("!") and not expr.startswith("!="):
        return not evaluate_condition(expr[1:], ctx)

    # Boolean literals
    if expr.lower() in ("true", "yes", "1"):
        return True
    if expr.lower() in ("false", "no", "0"):
        return False

    # Unary form: "is_empty {{var}}"
    unary_match = _UNARY_RE.match(expr)
    if unary_match:
        operand = _operand(unary_match.group(2), ctx)
        return bool(_OPS[unary_match.group(1)](operand, None))

    # Binary form: "left op right"
    binary_match = _EXPR_RE.match(expr)
    if binary_match:
        groups = binary_match.groups()
        left_raw, op_str, right_raw = groups[0:3] if groups[0] is not None else groups[3:6]
        left = _operand(left_raw, ctx)
        right = _operand(right_raw, ctx)
        left, right = _align(left, right)
        try:
            return bool(_OPS[op_str](left, right))
        except (TypeError, ValueError):
            return False

    # Fallback: truthy check on a placeholder, a bare path or a literal
    return bool(_operand(expr, ctx))


def _operand(token: str, ctx: dict[str, Any]) -> Any:
    token = token.strip()
    path = single_placeholder(token)
    if path is not None:
        return resolve_path(path, ctx)
    if "{{" in token:
        return _coerce(render_template_str(token, ctx))
    coerced = _coerce(token)
    if isinstance(coerced, str) and not _is_quoted(token):
        resolved = resolve_path(coerced, ctx)
        if resolved is not None:
            return resolved
    return coerced


def _align(left: Any, right: Any) -> tuple[Any, Any]:
    """Bring a number and a numeric string onto the same type."""
    if isinstance(left, (int, float)) and not isinstance(left, bool) and isinstance(right, str):
        num = _coerce(right)
        if isinstance(num, (int, float)):
            return left, num
    if isinstance(right, (int, float)) and not isinstance(right, bool) and isinstance(left, str):
        num = _coerce(left)
        if isinstance(num, (int, float)):
            return num, right
    return left, right


def _is_quoted(value: str) -> bool:
    stripped = value.strip()
    return len(stripped) >= 2 and stripped[0] == stripped[-1] and stripped[0] in "'\""


def _coerce(value: str) -> Any:
    """Coerce a string token to a Python value."""
    if not isinstance(value, str):
        return value

    stripped = value.strip()

    # Quoted strings
    if _is_quoted(stripped):
        return stripped[1:-1]

    # Boolean
    if stripped.lower() in ("true", "yes"):
        return True
    if stripped.lower() in ("false", "no"):
        return False

    # None
    if stripped.lower() in ("none", "null", "undefined"):
        return None

    # Number
    try:
        if "." in stripped:
            return float(stripped)
        return int(stripped)
    except ValueError:
        pass

    return stripped
