"""Business-day and billing-period arithmetic.

A driver's "day" runs from ``start_hour:00`` to ``start_hour:00`` on the next
calendar day, so rides logged after midnight still belong to the shift that
started the evening before. Billing periods are month-like windows that close
on a configurable day (``shimebi``) instead of the calendar month end.

All functions work in the local device time zone and take timestamps as epoch
milliseconds.
"""

from __future__ import annotations

import calendar
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

DATE_FORMAT = "%Y/%m/%d"  # Lexicographically ordered, so strings compare like dates
END_OF_DAY = time(23, 59, 59, 999999)


@dataclass(frozen=True, slots=True)
class BillingPeriod:
    """Inclusive billing window."""

    start: datetime  # First day at start_hour:00
    end: datetime  # Closing day at 23:59:59.999999

    @property
    def start_date(self) -> str:
        return format_date(self.start)

    @property
    def end_date(self) -> str:
        return format_date(self.end)

    def contains(self, business_date_str: str) -> bool:
        return self.start_date <= business_date_str <= self.end_date


def to_local(timestamp: int) -> datetime:
    """Convert epoch milliseconds to a naive local datetime."""
    return datetime.fromtimestamp(timestamp / 1000)


def to_timestamp(moment: datetime) -> int:
    """Convert a naive local datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)


def format_date(moment: date) -> str:
    return moment.strftime(DATE_FORMAT)


def parse_business_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def business_date(timestamp: int, start_hour: int) -> str:
    """Return the ``YYYY/MM/DD`` business date a timestamp belongs to."""
    moment = to_local(timestamp)
    if moment.hour < start_hour:
        moment -= timedelta(days=1)
    return format_date(moment)


def business_time(timestamp: int, start_hour: int) -> str:
    """Format a timestamp on the 30-hour clock (01:30 -> ``25:30`` at start 9)."""
    moment = to_local(timestamp)
    if moment.hour < start_hour:
        return f"{moment.hour + 24}:{moment.minute:02d}"
    return f"{moment.hour:02d}:{moment.minute:02d}"


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _closing_date(year: int, month: int, closing_day: int) -> date:
    """Closing day of a month, clamped to the month's length."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(closing_day, last_day))


def billing_period(
    reference: datetime | int, closing_day: int, start_hour: int = 0
) -> BillingPeriod:
    """Return the billing period enclosing ``reference``.

    ``closing_day`` 0 means the period is the calendar month. Otherwise the
    period runs from the day after the previous closing date through the next
    closing date, where a closing day missing from a month (30 in February)
    falls on that month's last day.
    """
    if not 0 <= closing_day <= 31:
        raise ValueError(f"closing_day must be between 0 and 31, got {closing_day}")

    if isinstance(reference, int):
        reference = to_local(reference)
    shifted = reference - timedelta(hours=start_hour)
    year, month = shifted.year, shifted.month

    if closing_day == 0:
        start_day = date(year, month, 1)
        end_day = date(year, month, calendar.monthrange(year, month)[1])
    else:
        this_close = _closing_date(year, month, closing_day)
        if shifted.day > this_close.day:
            start_day = this_close + timedelta(days=1)
            end_day = _closing_date(*_shift_month(year, month, 1), closing_day)
        else:
            previous_close = _closing_date(*_shift_month(year, month, -1), closing_day)
            start_day = previous_close + timedelta(days=1)
            end_day = this_close

    return BillingPeriod(
        start=datetime.combine(start_day, time(start_hour)),
        end=datetime.combine(end_day, END_OF_DAY),
    )


def billing_month_key(timestamp: int, closing_day: int, start_hour: int) -> str:
    """Label ``YYYY-MM`` of the billing month a ride is counted in."""
    period = billing_period(timestamp, closing_day, start_hour)
    return f"{period.end.year}-{period.end.month:02d}"


def generate_default_duty_days(
    closing_day: int = 20,
    start_hour: int = 9,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    limit: int = 20,
) -> list[str]:
    """Pick up to ``limit`` working days in the current period.

    Sundays and Wednesdays are never proposed.
    """
    period = billing_period(now or datetime.now(), closing_day, start_hour)
    candidates: list[str] = []
    current = period.start.date()
    while current <= period.end.date():
        if current.weekday() not in (calendar.SUNDAY, calendar.WEDNESDAY):
            candidates.append(format_date(current))
        current += timedelta(days=1)

    (rng or random.Random()).shuffle(candidates)
    return sorted(candidates[:limit])


__all__ = [
    "BillingPeriod",
    "billing_month_key",
    "billing_period",
    "business_date",
    "business_time",
    "format_date",
    "generate_default_duty_days",
    "parse_business_date",
    "to_local",
    "to_timestamp",
]
