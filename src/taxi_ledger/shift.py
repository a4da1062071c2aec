"""Shift lifecycle: start, breaks, edits and finalization.

States are ``NoShift -> Open -> NoShift``. Transitions requested from the
wrong state are logged and leave the session unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from taxi_ledger.business_calendar import business_date
from taxi_ledger.config import DEFAULT_PLANNED_HOURS
from taxi_ledger.model import (
    BreakState,
    DayMetadata,
    DriverSession,
    Shift,
    ShiftReport,
    new_record_id,
)
from taxi_ledger.reconcile import repartition
from taxi_ledger.records import all_records, sort_records

logger = logging.getLogger(__name__)


def start_shift(
    session: DriverSession,
    *,
    now: int,
    daily_goal: int | None = None,
    planned_hours: float | None = None,
    shift_id: str | None = None,
) -> DriverSession:
    """Open a shift for today's business date.

    History rides already logged for today move into the new shift, and the
    shift starts at the earliest of them. Rest minutes recorded for the date
    are carried over.
    """
    if session.shift is not None:
        logger.warning("Shift %s already open; start ignored", session.shift.id)
        return session

    today = business_date(now, session.start_hour)
    todays = [
        r for r in session.history if business_date(r.timestamp, session.start_hour) == today
    ]
    todays_ids = {r.id for r in todays}
    others = [r for r in session.history if r.id not in todays_ids]
    meta = session.day_metadata.get(today, DayMetadata())

    shift = Shift(
        id=shift_id or new_record_id(),
        start_time=min((r.timestamp for r in todays), default=now),
        daily_goal=daily_goal if daily_goal is not None else session.stats.default_daily_goal,
        planned_hours=planned_hours if planned_hours is not None else DEFAULT_PLANNED_HOURS,
        total_rest_minutes=meta.total_rest_minutes,
        records=sort_records(todays),
    )
    logger.info(
        "Started shift %s for %s with %d carried-over rides", shift.id, today, len(todays)
    )
    return replace(
        session,
        shift=shift,
        history=sort_records(others),
        status="active",
        last_closed=None,
    )


def finalize_shift(session: DriverSession, *, now: int) -> DriverSession:
    """Close the shift, merging its rides into history.

    A break still running is stopped first so its minutes are kept. The
    resulting :class:`ShiftReport` is stored on ``session.last_closed``.
    """
    if session.shift is None:
        logger.warning("No open shift to finalize")
        return session

    session = stop_break(session, now=now)
    shift = session.shift
    day = business_date(shift.start_time, session.start_hour)

    metadata = dict(session.day_metadata)
    metadata[day] = replace(
        metadata.get(day, DayMetadata()), total_rest_minutes=shift.total_rest_minutes
    )
    report = ShiftReport(
        shift_id=shift.id,
        business_date=day,
        ride_count=len(shift.records),
        total_sales=sum(r.amount for r in shift.records),
        total_rest_minutes=shift.total_rest_minutes,
        closed_at=now,
    )
    logger.info(
        "Finalized shift %s: %d rides, %d sales", shift.id, report.ride_count, report.total_sales
    )
    return replace(
        session,
        shift=None,
        history=sort_records(session.history + shift.records),
        day_metadata=metadata,
        break_state=BreakState(),
        status="completed",
        last_closed=report,
    )


def start_break(session: DriverSession, *, now: int) -> DriverSession:
    if session.shift is None or session.break_state.is_active:
        return session
    return replace(
        session, break_state=BreakState(is_active=True, start_time=now), status="break"
    )


def stop_break(session: DriverSession, *, now: int) -> DriverSession:
    """End a running break and add its whole minutes to the shift's rest time."""
    state = session.break_state
    if not state.is_active:
        return session

    shift = session.shift
    if shift is not None and state.start_time is not None:
        minutes = max(0, (now - state.start_time) // 60_000)
        shift = replace(shift, total_rest_minutes=shift.total_rest_minutes + minutes)
    return replace(session, shift=shift, break_state=BreakState(), status="active")


def toggle_break(session: DriverSession, *, now: int) -> DriverSession:
    if session.break_state.is_active:
        return stop_break(session, now=now)
    return start_break(session, now=now)


def add_rest_minutes(session: DriverSession, minutes: int) -> DriverSession:
    if session.shift is None:
        return session
    shift = session.shift
    total = max(0, shift.total_rest_minutes + minutes)
    return replace(session, shift=replace(shift, total_rest_minutes=total))


def edit_shift(
    session: DriverSession,
    *,
    start_time: int | None = None,
    daily_goal: int | None = None,
    planned_hours: float | None = None,
) -> DriverSession:
    """Edit the open shift. A new start time re-partitions every record."""
    if session.shift is None:
        logger.warning("No open shift to edit")
        return session

    shift = session.shift
    if daily_goal is not None:
        shift = replace(shift, daily_goal=daily_goal)
    if planned_hours is not None:
        shift = replace(shift, planned_hours=planned_hours)
    if start_time is None or start_time == shift.start_time:
        return replace(session, shift=shift)

    records = all_records(session)
    moved = replace(session, shift=replace(shift, start_time=start_time))
    return repartition(moved, records)


__all__ = [
    "add_rest_minutes",
    "edit_shift",
    "finalize_shift",
    "start_break",
    "start_shift",
    "stop_break",
    "toggle_break",
]
