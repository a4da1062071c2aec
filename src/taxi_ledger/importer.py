"""Deduplicate imported rides against existing records.

Imported rows carry no stable id, so a candidate is matched heuristically:
same minute, and either the same fare or the same pickup place. A match keeps
the existing id and takes the candidate's fields; anything else is inserted.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence

from taxi_ledger.config import DUPLICATE_WINDOW_MS
from taxi_ledger.errors import UnrecognizedFormatError
from taxi_ledger.model import (
    DriverSession,
    ImportDecision,
    ImportResult,
    SalesRecord,
    new_record_id,
)
from taxi_ledger.reconcile import repartition
from taxi_ledger.records import all_records

logger = logging.getLogger(__name__)


def is_duplicate(existing: SalesRecord, candidate: SalesRecord) -> bool:
    """Whether ``candidate`` describes the same ride as ``existing``."""
    time_match = abs(existing.timestamp - candidate.timestamp) < DUPLICATE_WINDOW_MS
    amount_match = existing.amount == candidate.amount
    location_match = bool(candidate.pickup_location) and (
        existing.pickup_location == candidate.pickup_location
    )
    return time_match and (amount_match or location_match)


def match_imports(
    candidates: Sequence[SalesRecord], existing: Iterable[SalesRecord]
) -> ImportResult:
    """Merge a parsed batch into the existing records.

    Existing records are scanned in their given order and the first match
    wins. Every candidate is compared with the records as they were before
    the batch, never with earlier candidates or their merged updates, so two
    near-identical rows in one file both land.
    """
    existing = list(existing)
    merged: list[SalesRecord] = list(existing)
    decisions: list[ImportDecision] = []

    for index, candidate in enumerate(candidates):
        match_at = next(
            (i for i, record in enumerate(existing) if is_duplicate(record, candidate)),
            None,
        )
        if match_at is not None:
            record_id = existing[match_at].id
            merged[match_at] = replace(candidate, id=record_id)
            decisions.append(ImportDecision(index, "update", record_id))
        else:
            record = replace(candidate, id=new_record_id())
            merged.append(record)
            decisions.append(ImportDecision(index, "insert", record.id))

    merged.sort(key=lambda r: r.timestamp)
    return ImportResult(records=merged, decisions=decisions)


def merge_batch(
    uid: str, candidates: Sequence[SalesRecord], existing: Iterable[SalesRecord]
) -> ImportResult:
    """Match a non-empty batch against ``existing`` and log the outcome."""
    if not candidates:
        raise UnrecognizedFormatError("Import batch contains no sales records")

    result = match_imports(candidates, existing)
    logger.info(
        "Imported %d rides for %s: %d added, %d updated",
        len(candidates),
        uid,
        result.added_count,
        result.updated_count,
    )
    return result


def import_into_session(
    session: DriverSession, candidates: Sequence[SalesRecord]
) -> tuple[DriverSession, ImportResult]:
    """Import a batch into the driver's own live data and re-partition it."""
    result = merge_batch(session.uid, candidates, all_records(session))
    return repartition(session, result.records), result


__all__ = ["import_into_session", "is_duplicate", "match_imports", "merge_batch"]
