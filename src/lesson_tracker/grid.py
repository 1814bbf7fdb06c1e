"""
Calendar grid generation: date ranges for month/week/day views.
"""

import enum
from dataclasses import dataclass
from datetime import date
from datetime import datetime
from datetime import timedelta

DAY_FIRST_HOUR = 8
DAY_LAST_HOUR = 22


class GridView(str, enum.Enum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


@dataclass(frozen=True)
class GridDay:
    """One cell of a month grid."""

    day: date
    in_month: bool


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def _check_week_start(week_start: int):
    if not 0 <= week_start <= 6:
        raise ValueError(f"week_start must be 0 (Monday) .. 6 (Sunday), got {week_start}")


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) range covering one calendar month."""
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end


def week_grid(reference, week_start: int = 0) -> list[date]:
    """The 7 days of the week containing ``reference``."""
    _check_week_start(week_start)
    day = _as_date(reference)
    first = day - timedelta(days=(day.weekday() - week_start) % 7)
    return [first + timedelta(days=offset) for offset in range(7)]


def month_grid(reference, week_start: int = 0) -> list[GridDay]:
    """Whole weeks covering the month of ``reference``.

    Leading and trailing cells belong to the adjacent months and are
    flagged with ``in_month=False``.
    """
    _check_week_start(week_start)
    day = _as_date(reference)
    first = day.replace(day=1)
    last = month_bounds(first.year, first.month)[1].date() - timedelta(days=1)

    start = first - timedelta(days=(first.weekday() - week_start) % 7)
    end = last + timedelta(days=(week_start + 6 - last.weekday()) % 7)

    cells = []
    current = start
    while current <= end:
        cells.append(GridDay(current, current.month == first.month))
        current += timedelta(days=1)
    return cells


def day_hours(first: int = DAY_FIRST_HOUR, last: int = DAY_LAST_HOUR) -> list[int]:
    """Hours shown on the day timeline, both ends inclusive."""
    return list(range(first, last + 1))


def grid_for(reference, view: GridView, week_start: int = 0) -> list[date]:
    """Dates shown by ``view`` for ``reference``."""
    if view == GridView.MONTH:
        return [cell.day for cell in month_grid(reference, week_start)]
    if view == GridView.WEEK:
        return week_grid(reference, week_start)
    return [_as_date(reference)]


def bucket_by_day(lessons) -> dict[date, list]:
    """Group lessons by local calendar day, each bucket sorted by start."""
    buckets: dict[date, list] = {}
    for lesson in lessons:
        if getattr(lesson, "date", None) is None:
            continue
        buckets.setdefault(lesson.date.date(), []).append(lesson)
    for bucket in buckets.values():
        bucket.sort(key=lambda lesson: (lesson.date, lesson.id))
    return buckets


def bucket_by_hour(lessons, day, hours: list[int] | None = None) -> dict[int, list]:
    """Lessons on ``day`` keyed by start hour for the day timeline."""
    if hours is None:
        hours = day_hours()
    day = _as_date(day)
    buckets: dict[int, list] = {hour: [] for hour in hours}
    for lesson in bucket_by_day(lessons).get(day, []):
        if lesson.date.hour in buckets:
            buckets[lesson.date.hour].append(lesson)
    return buckets
