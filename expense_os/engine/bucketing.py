"""
Month Bucketing

Maps any timestamp to the start of its "month bucket" under a
configurable fiscal start day. Every other engine component joins on
the value returned here, so these functions are pure and deterministic.
"""

import calendar
from datetime import date, datetime, tzinfo
from typing import Optional

from expense_os.models.ledger import month_label

MIN_START_DAY = 1
MAX_START_DAY = 28


def clamp_start_day(fiscal_start_day: int) -> int:
    """Clamp to [1, 28] so every month has the start day."""
    return max(MIN_START_DAY, min(MAX_START_DAY, fiscal_start_day))


def add_months(moment: datetime, months: int) -> datetime:
    """
    Shift by whole calendar months, clamping the day to the target
    month's length (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def localize(moment: datetime, tz: Optional[tzinfo]) -> datetime:
    """Wall-clock view of `moment` in `tz`; a naive moment is taken as already local."""
    if tz is None:
        return moment
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def month_key(
    moment: datetime,
    fiscal_start_day: int = 1,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Start of the month bucket containing `moment`.

    If the day of month is before the fiscal start day the bucket
    belongs to the previous calendar month. The result is the start day
    at 00:00:00 in `tz` (or in the moment's own tzinfo when `tz` is None).
    """
    start_day = clamp_start_day(fiscal_start_day)
    local = localize(moment, tz)

    year, month = local.year, local.month
    if local.day < start_day:
        month -= 1
        if month == 0:
            year, month = year - 1, 12

    return datetime(year, month, start_day, tzinfo=local.tzinfo)


def month_range(
    moment: datetime,
    fiscal_start_day: int = 1,
    tz: Optional[tzinfo] = None,
) -> tuple[datetime, datetime]:
    """Half-open [start, end) range of the bucket containing `moment`."""
    start = month_key(moment, fiscal_start_day, tz)
    return start, add_months(start, 1)


def bucket_end(bucket_start: datetime) -> datetime:
    """Exclusive end of a bucket given its (already normalized) start."""
    return add_months(bucket_start, 1)


def previous_bucket(bucket_start: datetime) -> datetime:
    return add_months(bucket_start, -1)


def days_in_bucket(bucket_start: datetime) -> int:
    """Number of calendar days from a bucket start to the next one."""
    end = bucket_end(bucket_start)
    return max(1, (end.date() - bucket_start.date()).days)


def day_of(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day used for per-day grouping, read in the ledger timezone."""
    return localize(moment, tz).date()


__all__ = [
    "add_months",
    "bucket_end",
    "clamp_start_day",
    "day_of",
    "days_in_bucket",
    "localize",
    "month_key",
    "month_label",
    "month_range",
    "previous_bucket",
]
