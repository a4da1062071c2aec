"""Reducer-style entry point for driver session updates.

Every state change, local or remote, is an event applied by
:func:`apply_event`. Store snapshots arrive as :class:`SnapshotReceived` and
replace local state wholesale (last writer wins per document).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Union

from taxi_ledger import shift as shift_lifecycle
from taxi_ledger.business_calendar import generate_default_duty_days, to_local
from taxi_ledger.config import load_stats, stats_to_document
from taxi_ledger.model import (
    DayMetadata,
    DriverSession,
    ImportResult,
    SalesRecord,
    ShiftStatus,
)
from taxi_ledger.reconcile import delete_record, reconcile, repartition
from taxi_ledger.records import all_records
from taxi_ledger.store_gateway import session_from_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotReceived:
    document: Mapping[str, Any] | None
    now: int


@dataclass(frozen=True)
class RecordSaved:
    record: SalesRecord


@dataclass(frozen=True)
class RecordDeleted:
    record_id: str


@dataclass(frozen=True)
class RecordsImported:
    result: ImportResult


@dataclass(frozen=True)
class ShiftStarted:
    now: int
    daily_goal: int | None = None
    planned_hours: float | None = None


@dataclass(frozen=True)
class ShiftFinalized:
    now: int


@dataclass(frozen=True)
class ShiftEdited:
    start_time: int | None = None
    daily_goal: int | None = None
    planned_hours: float | None = None


@dataclass(frozen=True)
class BreakToggled:
    now: int


@dataclass(frozen=True)
class RestMinutesAdded:
    minutes: int


@dataclass(frozen=True)
class StatusChanged:
    status: ShiftStatus


@dataclass(frozen=True)
class StatsUpdated:
    changes: Mapping[str, Any] = field(default_factory=dict)  # camelCase stats fields
    now: int | None = None


@dataclass(frozen=True)
class DayMetadataUpdated:
    day: str  # Business date
    memo: str | None = None
    attributed_month: str | None = None
    total_rest_minutes: int | None = None


Event = Union[
    SnapshotReceived,
    RecordSaved,
    RecordDeleted,
    RecordsImported,
    ShiftStarted,
    ShiftFinalized,
    ShiftEdited,
    BreakToggled,
    RestMinutesAdded,
    StatusChanged,
    StatsUpdated,
    DayMetadataUpdated,
]


def _carried_status(session: DriverSession, incoming: DriverSession) -> ShiftStatus:
    # "riding" and "completed" are never stored; keep them while still consistent
    if session.status == "riding" and incoming.shift and not incoming.break_state.is_active:
        return "riding"
    if session.status == "completed" and incoming.shift is None:
        return "completed"
    return incoming.status


def _apply_snapshot(session: DriverSession, event: SnapshotReceived) -> DriverSession:
    incoming = session_from_document(session.uid, event.document, event.now)
    incoming = replace(
        incoming,
        status=_carried_status(session, incoming),
        last_closed=session.last_closed if incoming.shift is None else None,
    )
    return repartition(incoming, all_records(incoming))


def _apply_stats(session: DriverSession, event: StatsUpdated) -> DriverSession:
    merged = {**stats_to_document(session.stats), **event.changes}
    stats = load_stats(merged)
    if stats.shimebi_day != session.stats.shimebi_day and "dutyDays" not in event.changes:
        now: datetime = to_local(event.now) if event.now is not None else datetime.now()
        stats = replace(
            stats,
            duty_days=tuple(
                generate_default_duty_days(
                    stats.shimebi_day, stats.business_start_hour, now=now
                )
            ),
        )
    updated = replace(session, stats=stats)
    if stats.business_start_hour != session.stats.business_start_hour:
        # Business dates moved; re-derive shift membership
        updated = repartition(updated, all_records(updated))
    return updated


def _apply_metadata(session: DriverSession, event: DayMetadataUpdated) -> DriverSession:
    current = session.day_metadata.get(event.day, DayMetadata())
    changes = {
        name: value
        for name, value in (
            ("memo", event.memo),
            ("attributed_month", event.attributed_month),
            ("total_rest_minutes", event.total_rest_minutes),
        )
        if value is not None
    }
    metadata = dict(session.day_metadata)
    metadata[event.day] = replace(current, **changes)
    return replace(session, day_metadata=metadata)


def apply_event(session: DriverSession, event: Event) -> DriverSession:
    """Return the session that results from ``event``."""
    if isinstance(event, SnapshotReceived):
        return _apply_snapshot(session, event)
    if isinstance(event, RecordSaved):
        return reconcile(event.record, session)
    if isinstance(event, RecordDeleted):
        return delete_record(session, event.record_id)
    if isinstance(event, RecordsImported):
        return repartition(session, event.result.records)
    if isinstance(event, ShiftStarted):
        return shift_lifecycle.start_shift(
            session,
            now=event.now,
            daily_goal=event.daily_goal,
            planned_hours=event.planned_hours,
        )
    if isinstance(event, ShiftFinalized):
        return shift_lifecycle.finalize_shift(session, now=event.now)
    if isinstance(event, ShiftEdited):
        return shift_lifecycle.edit_shift(
            session,
            start_time=event.start_time,
            daily_goal=event.daily_goal,
            planned_hours=event.planned_hours,
        )
    if isinstance(event, BreakToggled):
        return shift_lifecycle.toggle_break(session, now=event.now)
    if isinstance(event, RestMinutesAdded):
        return shift_lifecycle.add_rest_minutes(session, event.minutes)
    if isinstance(event, StatusChanged):
        if session.shift is None:
            logger.debug("Status %s ignored without an open shift", event.status)
            return session
        return replace(session, status=event.status)
    if isinstance(event, StatsUpdated):
        return _apply_stats(session, event)
    if isinstance(event, DayMetadataUpdated):
        return _apply_metadata(session, event)
    raise TypeError(f"Unsupported event: {type(event).__name__}")


__all__ = [
    "BreakToggled",
    "DayMetadataUpdated",
    "Event",
    "RecordDeleted",
    "RecordSaved",
    "RecordsImported",
    "RestMinutesAdded",
    "ShiftEdited",
    "ShiftFinalized",
    "ShiftStarted",
    "SnapshotReceived",
    "StatsUpdated",
    "StatusChanged",
    "apply_event",
]
