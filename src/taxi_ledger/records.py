"""Read-side views over the partitioned record set.

A driver's records live either in the open shift or in history, never both.
These helpers look across both partitions without mutating anything.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from taxi_ledger.business_calendar import billing_period, business_date, format_date
from taxi_ledger.model import DriverSession, Partition, SalesRecord


def sort_records(records: Iterable[SalesRecord]) -> tuple[SalesRecord, ...]:
    return tuple(sorted(records, key=lambda r: r.timestamp))


def all_records(session: DriverSession) -> tuple[SalesRecord, ...]:
    """Shift records and history combined, one entry per id."""
    shift_records = session.shift.records if session.shift else ()
    by_id: dict[str, SalesRecord] = {r.id: r for r in session.history}
    by_id.update({r.id: r for r in shift_records})
    return sort_records(by_id.values())


def find_partition(session: DriverSession, record_id: str) -> Partition | None:
    if session.shift and any(r.id == record_id for r in session.shift.records):
        return "shift"
    if any(r.id == record_id for r in session.history):
        return "history"
    return None


def records_in_business_date(
    records: Iterable[SalesRecord], day: str, start_hour: int
) -> list[SalesRecord]:
    return [r for r in records if business_date(r.timestamp, start_hour) == day]


def records_in_period(
    records: Iterable[SalesRecord],
    start: datetime,
    end: datetime,
    start_hour: int,
) -> list[SalesRecord]:
    """Records whose business date falls inside ``[start, end]`` (inclusive)."""
    start_str = format_date(start)
    end_str = format_date(end)
    return [
        r
        for r in records
        if start_str <= business_date(r.timestamp, start_hour) <= end_str
    ]


def period_records(session: DriverSession, now: datetime) -> list[SalesRecord]:
    """All records in the billing period that encloses ``now``."""
    period = billing_period(
        now, session.stats.shimebi_day, session.stats.business_start_hour
    )
    return records_in_period(
        all_records(session), period.start, period.end, session.start_hour
    )


__all__ = [
    "all_records",
    "find_partition",
    "period_records",
    "records_in_business_date",
    "records_in_period",
    "sort_records",
]
