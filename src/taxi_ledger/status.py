"""Status projection for broadcast to colleagues.

Pure derivations over a :class:`DriverSession`: today's shift totals, billing
period totals and the payload written to ``public_status/{uid}``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable

from taxi_ledger.business_calendar import (
    billing_month_key,
    billing_period,
    business_date,
    to_local,
)
from taxi_ledger.model import (
    STREET_RIDE_TYPES,
    DriverSession,
    SalesRecord,
    ShiftStatus,
    StatusSummary,
)
from taxi_ledger.records import all_records, records_in_period
from taxi_ledger.store_gateway import record_to_document

OPEN_SHIFT_STATUSES = frozenset({"riding", "active", "break"})
TOP_RECORD_LIMIT = 5


def resolve_status(session: DriverSession, requested: ShiftStatus) -> ShiftStatus:
    """Clamp a requested status to what the session state allows."""
    if session.shift is not None:
        if requested in OPEN_SHIFT_STATUSES:
            return requested
        return "break" if session.break_state.is_active else "active"
    return "completed" if requested == "completed" else "offline"


def dispatch_count(records: Iterable[SalesRecord]) -> int:
    return sum(1 for r in records if r.ride_type not in STREET_RIDE_TYPES)


def project_status(
    session: DriverSession, requested: ShiftStatus, now: datetime | int
) -> StatusSummary:
    """Summarise the session for observers.

    After a finalize the shift figures come from ``session.last_closed`` so the
    terminal broadcast still reports the closed shift's rides and sales.
    """
    if isinstance(now, int):
        now = to_local(now)
    status = resolve_status(session, requested)
    stats = session.stats
    period = billing_period(now, stats.shimebi_day, stats.business_start_hour)
    in_period = records_in_period(
        all_records(session), period.start, period.end, session.start_hour
    )

    shift = session.shift
    if shift is not None:
        shift_sales = sum(r.amount for r in shift.records)
        shift_rides = len(shift.records)
        dispatched = dispatch_count(shift.records)
    elif status == "completed" and session.last_closed is not None:
        shift_sales = session.last_closed.total_sales
        shift_rides = session.last_closed.ride_count
        dispatched = 0
    else:
        shift_sales = shift_rides = dispatched = 0

    return StatusSummary(
        uid=session.uid,
        status=status,
        shift_sales=shift_sales,
        shift_ride_count=shift_rides,
        dispatch_count=dispatched,
        period_sales=sum(r.amount for r in in_period),
        period_rides=len(in_period),
        period_start=period.start_date,
        period_end=period.end_date,
        start_time=shift.start_time if shift else None,
        planned_end_time=shift.planned_end_time if shift else None,
    )


def payment_breakdown(records: Iterable[SalesRecord]) -> Dict[str, int]:
    """Totals per payment method; the cash part of split payments goes to CASH."""
    breakdown: Dict[str, int] = defaultdict(int)
    for record in records:
        if record.payment_method == "CASH":
            cash_part = record.total
        else:
            if record.non_cash_amount > 0:
                breakdown[record.payment_method] += record.non_cash_amount
            cash_part = record.total - record.non_cash_amount
        if cash_part > 0:
            breakdown["CASH"] += cash_part
    return dict(breakdown)


def payment_counts(records: Iterable[SalesRecord]) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for record in records:
        counts[record.payment_method] += 1
    return dict(counts)


def monthly_totals(session: DriverSession) -> Dict[str, Dict[str, Any]]:
    """Sales per billing month keyed ``YYYY-MM``.

    A business date whose metadata names an attributed month is counted in
    that month instead of the one its billing period falls in.
    """
    stats = session.stats
    months: Dict[str, Dict[str, Any]] = {}
    for record in all_records(session):
        day = business_date(record.timestamp, stats.business_start_hour)
        meta = session.day_metadata.get(day)
        key = (meta and meta.attributed_month) or billing_month_key(
            record.timestamp, stats.shimebi_day, stats.business_start_hour
        )
        entry = months.setdefault(key, {"sortKey": key, "sales": 0, "rides": 0})
        entry["sales"] += record.amount
        entry["rides"] += 1
    return months


def to_public_document(
    session: DriverSession, summary: StatusSummary, now_ms: int
) -> Dict[str, Any]:
    """Build the ``public_status/{uid}`` payload (merge-written)."""
    records = all_records(session)
    top = sorted(records, key=lambda r: r.amount, reverse=True)[:TOP_RECORD_LIMIT]
    payload: Dict[str, Any] = {
        "uid": session.uid,
        "name": session.stats.user_name,
        "status": summary.status,
        "monthlyTotal": summary.period_sales,
        "monthlyRides": summary.period_rides,
        "lastUpdated": now_ms,
        "businessStartHour": session.stats.business_start_hour,
        "visibilityMode": session.stats.visibility_mode,
        "allowedViewers": list(session.stats.allowed_viewers),
        "topRecords": [record_to_document(r) for r in top],
        "months": monthly_totals(session),
    }
    if session.shift is not None:
        payload.update(
            {
                "startTime": summary.start_time,
                "plannedEndTime": summary.planned_end_time,
                "sales": summary.shift_sales,
                "rideCount": summary.shift_ride_count,
                "dispatchCount": summary.dispatch_count,
                "records": [record_to_document(r) for r in session.shift.records],
            }
        )
    elif summary.status == "completed":
        payload.update(
            {"sales": summary.shift_sales, "rideCount": summary.shift_ride_count}
        )
    return payload


__all__ = [
    "dispatch_count",
    "monthly_totals",
    "payment_breakdown",
    "payment_counts",
    "project_status",
    "resolve_status",
    "to_public_document",
]
