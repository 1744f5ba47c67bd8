"""Date parsing shared by the dateValid and match blocks."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

# Canvas format names -> strptime patterns, in auto-detect order
DATE_FORMATS: dict[str, str] = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM/DD/YYYY": "%m/%d/%Y",
    "DD/MM/YYYY": "%d/%m/%Y",
    "DD-MM-YYYY": "%d-%m-%Y",
}

AUTO_DETECT = "auto-detect"


def parse_date(value: Any, fmt: str | None = AUTO_DETECT) -> date | None:
    """Parse *value* with an explicit canvas format, or try every known
    format followed by ISO-8601 with a time part.  Returns None when the
    value is not a real calendar date (``02/30/2024`` never parses)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    if fmt and fmt != AUTO_DETECT:
        pattern = DATE_FORMATS.get(fmt)
        if pattern is None:
            return None
        return _strptime(text, pattern)

    for pattern in DATE_FORMATS.values():
        parsed = _strptime(text, pattern)
        if parsed is not None:
            return parsed
    return parse_datetime(text, date_only=True)


def parse_datetime(value: Any, date_only: bool = False) -> Any:
    """ISO-8601 fallback (``2024-03-01T10:00:00Z``)."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.date() if date_only else parsed


def _strptime(text: str, pattern: str) -> date | None:
    try:
        return datetime.strptime(text, pattern).date()
    except ValueError:
        return None


def js_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def age_on(birth: date, today: date) -> int:
    years = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        years -= 1
    return years
