"""match block: typed comparison of two template-resolved values."""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import Any

from blockflow.compiler.blocks import MatchConfig, MatchOptions
from blockflow.handlers.base import BlockHandler, Outcome
from blockflow.handlers.dates import parse_date, parse_datetime
from blockflow.templating.engine import resolve, stringify

_UNARY_OPERATORS = frozenset({
    "is_empty", "is_not_empty", "is_number", "is_not_number",
    "is_today", "is_this_week", "is_this_month",
})


class MatchError(ValueError):
    pass


# ── Text ────────────────────────────────────────────────────────


def compare_text(left: Any, right: Any, operator: str, options: MatchOptions) -> bool:
    lval, rval = stringify(left), stringify(right)
    if options.trim_spaces:
        lval, rval = lval.strip(), rval.strip()
    if options.ignore_case:
        lval, rval = lval.lower(), rval.lower()

    if operator in ("equals", "equals_exactly"):
        return lval == rval
    if operator == "not_equals":
        return lval != rval
    if operator == "contains":
        return rval in lval
    if operator == "not_contains":
        return rval not in lval
    if operator == "starts_with":
        return lval.startswith(rval)
    if operator == "ends_with":
        return lval.endswith(rval)
    if operator == "is_empty":
        return lval == ""
    if operator == "is_not_empty":
        return lval != ""
    if operator == "matches_pattern":
        try:
            return re.search(rval, lval, re.IGNORECASE if options.ignore_case else 0) is not None
        except re.error as exc:
            raise MatchError(f"Invalid regex pattern: {rval}") from exc
    raise MatchError(f"Unknown text operator: {operator}")


# ── Number ──────────────────────────────────────────────────────


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def compare_number(left: Any, right: Any, operator: str) -> bool:
    lnum = _to_number(left)
    if operator == "is_number":
        return lnum is not None
    if operator == "is_not_number":
        return lnum is None
    if lnum is None:
        raise MatchError(f'Left value "{left}" is not a valid number')

    if operator == "between":
        bounds = [_to_number(part) for part in str(right).split(",")]
        if len(bounds) != 2 or None in bounds:
            raise MatchError(f'Between operator requires "min,max" format, got: {right}')
        return bounds[0] <= lnum <= bounds[1]

    rnum = _to_number(right)
    if rnum is None:
        raise MatchError(f'Right value "{right}" is not a valid number')
    if operator == "equals":
        return lnum == rnum
    if operator == "not_equals":
        return lnum != rnum
    if operator == "greater_than":
        return lnum > rnum
    if operator == "less_than":
        return lnum < rnum
    if operator in ("greater_than_or_equal", "at_least"):
        return lnum >= rnum
    if operator in ("less_than_or_equal", "at_most"):
        return lnum <= rnum
    raise MatchError(f"Unknown number operator: {operator}")


# ── Date ────────────────────────────────────────────────────────


def _to_datetime(value: Any) -> datetime | None:
    parsed = parse_datetime(value)
    if parsed is not None:
        return parsed.replace(tzinfo=None)
    day = parse_date(value)
    if day is not None:
        return datetime(day.year, day.month, day.day)
    return None


def _int_arg(value: Any, operator: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MatchError(f'Right value "{value}" must be a number for {operator} operator') from None


def compare_date(left: Any, right: Any, operator: str, now: datetime | None = None) -> bool:
    ldt = _to_datetime(left)
    if ldt is None:
        raise MatchError(f'Left value "{left}" is not a valid date')
    now = now or datetime.now()
    today = now.date()

    if operator == "is_today":
        return ldt.date() == today
    if operator == "is_this_week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)  # weeks start on Sunday
        return start <= ldt.date() <= start + timedelta(days=6)
    if operator == "is_this_month":
        return (ldt.year, ldt.month) == (today.year, today.month)
    if operator == "is_within_last_days":
        days = _int_arg(right, operator)
        return now - timedelta(days=days) <= ldt <= now
    if operator == "is_within_next_days":
        days = _int_arg(right, operator)
        return now <= ldt <= now + timedelta(days=days)

    rdt = _to_datetime(right)
    if rdt is None:
        raise MatchError(f'Right value "{right}" is not a valid date')
    if operator in ("equals", "is_exactly"):
        return ldt == rdt
    if operator == "not_equals":
        return ldt != rdt
    if operator == "is_after":
        return ldt > rdt
    if operator == "is_before":
        return ldt < rdt
    raise MatchError(f"Unknown date operator: {operator}")


# ── List ────────────────────────────────────────────────────────


def _to_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    text = stringify(value)
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        parsed = None
    if isinstance(parsed, list):
        return parsed
    if text.strip() == "":
        return []
    return [item.strip() for item in text.split(",")]


def compare_list(left: Any, right: Any, operator: str, options: MatchOptions) -> bool:
    items = _to_list(left)
    if operator == "is_empty":
        return not items
    if operator == "is_not_empty":
        return bool(items)
    if operator == "has_length":
        return len(items) == _int_arg(right, operator)
    if operator == "has_length_greater_than":
        return len(items) > _int_arg(right, operator)
    if operator == "has_length_less_than":
        return len(items) < _int_arg(right, operator)

    if operator in ("includes", "not_includes"):
        wanted = [right]
    else:
        wanted = _to_list(right)

    def norm(item: Any) -> str:
        text = stringify(item)
        return text.lower() if options.ignore_case else text

    have = {norm(item) for item in items}
    wanted_norm = [norm(item) for item in wanted]
    if operator == "includes":
        return wanted_norm[0] in have
    if operator == "not_includes":
        return wanted_norm[0] not in have
    if operator == "includes_any_of":
        return any(item in have for item in wanted_norm)
    if operator == "includes_all_of":
        return all(item in have for item in wanted_norm)
    if operator == "includes_none_of":
        return not any(item in have for item in wanted_norm)
    raise MatchError(f"Unknown list operator: {operator}")


def compare(left: Any, right: Any, comparison_type: str, operator: str, options: MatchOptions) -> bool:
    if comparison_type == "number":
        return compare_number(left, right, operator)
    if comparison_type == "date":
        return compare_date(left, right, operator)
    if comparison_type == "list":
        return compare_list(left, right, operator, options)
    return compare_text(left, right, operator, options)


class MatchHandler(BlockHandler):
    block_type = "match"

    async def run(self, config: MatchConfig, context, tenant_id, actor_id) -> Outcome:
        if config.left_value is None:
            raise MatchError("Left value is required for match comparison")
        if config.right_value is None and config.operator not in _UNARY_OPERATORS:
            raise MatchError("Right value is required for match comparison")

        left = resolve(config.left_value, context)
        right = resolve(config.right_value, context)
        matched = compare(left, right, config.comparison_type, config.operator, config.options)
        return Outcome(
            success=True,
            routing_hint=matched,
            message=f"{left!r} {config.operator} {right!r}: {'match' if matched else 'no match'}",
            context_patch={
                "matchResult": {
                    "matches": matched,
                    "leftValue": left,
                    "rightValue": right,
                    "operator": config.operator,
                    "comparisonType": config.comparison_type,
                },
            },
        )

    def on_error(self, exc: Exception) -> Outcome:
        return Outcome.failed(str(exc), routing_hint=False)
