"""Single decision point for shift/history membership.

Every save, edit, import and shift-time change funnels through
:func:`reconcile` or :func:`repartition`, so a record id is held by at most
one partition after any mutation. A record belongs to the open shift exactly
when its business date equals the shift's business date.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from taxi_ledger.business_calendar import business_date
from taxi_ledger.model import DriverSession, Partition, SalesRecord
from taxi_ledger.records import find_partition, sort_records

logger = logging.getLogger(__name__)


def shift_business_date(session: DriverSession) -> str | None:
    if session.shift is None:
        return None
    return business_date(session.shift.start_time, session.start_hour)


def target_partition(record: SalesRecord, session: DriverSession) -> Partition:
    """Partition ``record`` should live in given the session's open shift."""
    shift_date = shift_business_date(session)
    if shift_date is None:
        return "history"
    if business_date(record.timestamp, session.start_hour) == shift_date:
        return "shift"
    return "history"


def _without(records: Iterable[SalesRecord], record_id: str) -> list[SalesRecord]:
    return [r for r in records if r.id != record_id]


def reconcile(record: SalesRecord, session: DriverSession) -> DriverSession:
    """Insert or replace ``record`` by id and place it in the right partition.

    An edit that moves a ride across the shift's business date relocates it:
    back-dating a shift ride sends it to history, and editing a historical ride
    into today's business date pulls it into the open shift.
    """
    target = target_partition(record, session)
    current = find_partition(session, record.id)
    if current is not None and current != target:
        logger.info("Relocating record %s from %s to %s", record.id, current, target)

    history = _without(session.history, record.id)
    shift = session.shift
    if shift is not None:
        shift_records = _without(shift.records, record.id)
        if target == "shift":
            shift_records.append(record)
        shift = replace(shift, records=sort_records(shift_records))
    if target == "history":
        history.append(record)

    return replace(session, shift=shift, history=sort_records(history))


def delete_record(session: DriverSession, record_id: str) -> DriverSession:
    """Remove a record from whichever partition holds it. Missing ids are ignored."""
    if find_partition(session, record_id) is None:
        logger.debug("Delete of unknown record %s ignored", record_id)
        return session

    shift = session.shift
    if shift is not None:
        shift = replace(shift, records=tuple(_without(shift.records, record_id)))
    return replace(
        session, shift=shift, history=tuple(_without(session.history, record_id))
    )


def repartition(
    session: DriverSession, records: Iterable[SalesRecord]
) -> DriverSession:
    """Replace the whole record set with ``records``, split by business date."""
    shift_date = shift_business_date(session)
    shift_part: list[SalesRecord] = []
    history_part: list[SalesRecord] = []
    for record in records:
        if (
            shift_date is not None
            and business_date(record.timestamp, session.start_hour) == shift_date
        ):
            shift_part.append(record)
        else:
            history_part.append(record)

    shift = session.shift
    if shift is not None:
        shift = replace(shift, records=sort_records(shift_part))
    return replace(session, shift=shift, history=sort_records(history_part))


__all__ = [
    "delete_record",
    "reconcile",
    "repartition",
    "shift_business_date",
    "target_partition",
]
