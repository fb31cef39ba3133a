"""
Household Bulk Assistant — Date helpers.

Parsing of due-date modifiers (ISO date or datetime), weekend checks, and
resolution of relative time words ("tomorrow", "friday") to absolute dates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

# Python weekday numbering: Monday=0 … Sunday=6
WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_DEFAULT_OFFSET = 1  # unknown time words mean "tomorrow"


@dataclass(frozen=True)
class DueDate:
    """A parsed due date. Date-only values compare at day granularity."""

    value: datetime     # always timezone-aware
    date_only: bool

    @property
    def is_weekend(self) -> bool:
        return self.value.weekday() >= 5

    def is_before(self, now: datetime) -> bool:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if self.date_only:
            return self.value.date() < now.astimezone(timezone.utc).date()
        return self.value < now


def parse_due_date(value: object) -> DueDate | None:
    """Parse an ISO date/datetime string (or date/datetime object).

    Naive datetimes are taken as UTC. Returns None when the value cannot be
    parsed.
    """
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return DueDate(value=dt, date_only=False)
    if isinstance(value, date):
        return DueDate(
            value=datetime(value.year, value.month, value.day, tzinfo=timezone.utc),
            date_only=True,
        )
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        if len(text) == 10:
            d = date.fromisoformat(text)
            return DueDate(
                value=datetime(d.year, d.month, d.day, tzinfo=timezone.utc),
                date_only=True,
            )
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return DueDate(value=dt, date_only=False)


def days_until_weekday(target_weekday: int, today: date) -> int:
    """Days from today to the next target weekday; the same day means next week."""
    days = (target_weekday - today.weekday() + 7) % 7
    return 7 if days == 0 else days


def time_reference_offset(time_ref: str, today: date) -> int:
    """Day offset for a relative time word, from a fixed table."""
    ref = time_ref.strip().lower()
    if ref == "today":
        return 0
    if ref == "tomorrow":
        return 1
    if ref in WEEKDAYS:
        return days_until_weekday(WEEKDAYS[ref], today)
    if ref == "weekend":
        return days_until_weekday(WEEKDAYS["saturday"], today)
    return _DEFAULT_OFFSET


def resolve_time_reference(time_ref: str | None, today: date | None = None) -> str:
    """Resolve a relative time word to an absolute ISO date (YYYY-MM-DD).

    No reference resolves to today.
    """
    today = today or date.today()
    if not time_ref:
        return today.isoformat()
    return (today + timedelta(days=time_reference_offset(time_ref, today))).isoformat()
