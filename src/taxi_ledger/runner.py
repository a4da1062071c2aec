"""Driver-facing orchestration.

:class:`DriverLedger` owns one driver's session: every operation is applied
through the session reducer, then the private ``users/{uid}`` document and the
``public_status/{uid}`` projection are pushed through a :class:`SyncChannel`.
``run_import`` is the batch entry point used by the CLI and writes a JSON
report of what was imported.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from taxi_ledger import csv_reader, excel_reader
from taxi_ledger.business_calendar import to_timestamp
from taxi_ledger.config import default_state_path
from taxi_ledger.geocode import Geocoder, prefill_locations
from taxi_ledger.importer import import_into_session, merge_batch
from taxi_ledger.model import (
    DriverSession,
    ImportResult,
    MonthlyStats,
    SalesRecord,
    ShiftReport,
    ShiftStatus,
)
from taxi_ledger.records import all_records
from taxi_ledger.report import (
    build_error_payload,
    build_import_report_payload,
    write_report_to_json,
)
from taxi_ledger.session import (
    BreakToggled,
    DayMetadataUpdated,
    Event,
    RecordDeleted,
    RecordSaved,
    RecordsImported,
    RestMinutesAdded,
    ShiftEdited,
    ShiftFinalized,
    ShiftStarted,
    SnapshotReceived,
    StatsUpdated,
    StatusChanged,
    apply_event,
)
from taxi_ledger.status import project_status, to_public_document
from taxi_ledger.store_gateway import (
    PUBLIC_STATUS,
    USERS,
    DocumentStore,
    JsonFileDocumentStore,
    SyncChannel,
    session_from_document,
    session_to_document,
)

logger = logging.getLogger(__name__)

DEFAULT_REPORT_NAME = "import_report.json"
EXCEL_SUFFIXES = (".xlsx", ".xlsm")


def now_ms() -> int:
    return to_timestamp(datetime.now())


def load_candidates(
    source_path: Path | str, stats: MonthlyStats | None = None
) -> list[SalesRecord]:
    """Read ride candidates from a CSV or Excel ride-detail export."""
    source_path = Path(source_path)
    if source_path.suffix.lower() in EXCEL_SUFFIXES:
        return excel_reader.extract_sales_records(source_path, stats=stats)
    return csv_reader.read_sales_csv(source_path, stats)


class DriverLedger:
    """One driver's live ledger bound to a document store."""

    def __init__(
        self,
        store: DocumentStore,
        uid: str,
        *,
        clock: Callable[[], int] = now_ms,
        sync: SyncChannel | None = None,
    ):
        self.store = store
        self.uid = uid
        self.clock = clock
        self.sync = sync or SyncChannel(store)
        self.session = DriverSession(uid=uid)
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Store wiring
    # ------------------------------------------------------------------
    def load(self) -> DriverSession:
        """Replace local state with the stored document, once."""
        self._on_snapshot(self.store.get_document(USERS, self.uid))
        return self.session

    def subscribe(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(USERS, self.uid, self._on_snapshot)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, document: Mapping[str, Any] | None) -> None:
        self.session = apply_event(self.session, SnapshotReceived(document, self.clock()))

    def dispatch(self, event: Event, status: ShiftStatus | None = None) -> DriverSession:
        """Apply ``event`` locally, then push private and public documents."""
        self.session = apply_event(self.session, event)
        self.publish(status)
        return self.session

    def publish(self, status: ShiftStatus | None = None) -> bool:
        session = self.session
        now = self.clock()
        summary = project_status(session, status or session.status, now)
        private_ok = self.sync.push(USERS, self.uid, session_to_document(session))
        public_ok = self.sync.push(
            PUBLIC_STATUS, self.uid, to_public_document(session, summary, now)
        )
        return private_ok and public_ok

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def save_record(
        self, record: SalesRecord, geocoder: Geocoder | None = None
    ) -> SalesRecord:
        if geocoder is not None:
            record = prefill_locations(record, geocoder)
        self.dispatch(RecordSaved(record))
        return record

    def delete_record(self, record_id: str) -> DriverSession:
        return self.dispatch(RecordDeleted(record_id))

    def start_shift(
        self, daily_goal: int | None = None, planned_hours: float | None = None
    ) -> DriverSession:
        return self.dispatch(ShiftStarted(self.clock(), daily_goal, planned_hours))

    def finalize_shift(self) -> ShiftReport | None:
        self.dispatch(ShiftFinalized(self.clock()), status="completed")
        return self.session.last_closed

    def toggle_break(self) -> DriverSession:
        return self.dispatch(BreakToggled(self.clock()))

    def set_riding(self, riding: bool) -> DriverSession:
        return self.dispatch(StatusChanged("riding" if riding else "active"))

    def add_rest_minutes(self, minutes: int) -> DriverSession:
        return self.dispatch(RestMinutesAdded(minutes))

    def edit_shift(
        self,
        *,
        start_time: int | None = None,
        daily_goal: int | None = None,
        planned_hours: float | None = None,
    ) -> DriverSession:
        return self.dispatch(ShiftEdited(start_time, daily_goal, planned_hours))

    def update_stats(self, changes: Mapping[str, Any]) -> DriverSession:
        return self.dispatch(StatsUpdated(dict(changes), self.clock()))

    def update_day_metadata(
        self,
        day: str,
        *,
        memo: str | None = None,
        attributed_month: str | None = None,
        total_rest_minutes: int | None = None,
    ) -> DriverSession:
        return self.dispatch(
            DayMetadataUpdated(day, memo, attributed_month, total_rest_minutes)
        )

    def import_records(self, candidates: Sequence[SalesRecord]) -> ImportResult:
        """Merge imported rides into this driver's own records."""
        result = merge_batch(self.uid, candidates, all_records(self.session))
        self.dispatch(RecordsImported(result))
        return result

    def import_file(self, source_path: Path | str) -> ImportResult:
        return self.import_records(load_candidates(source_path, self.session.stats))

    def import_for_driver(
        self, target_uid: str, candidates: Sequence[SalesRecord]
    ) -> ImportResult:
        """Import into another driver's stored document without touching ours."""
        if target_uid == self.uid:
            return self.import_records(candidates)
        document = self.store.get_document(USERS, target_uid)
        target = session_from_document(target_uid, document, self.clock())
        target, result = import_into_session(target, candidates)
        self.sync.push(USERS, target_uid, session_to_document(target))
        return result


def run_import(
    source_path: str,
    *,
    uid: str,
    state_path: str | None = None,
    output_path: str | None = None,
) -> Path:
    """Import a ride-detail file into the driver's ledger and write a JSON report."""

    report_path = Path(output_path) if output_path else Path(DEFAULT_REPORT_NAME)
    try:
        store = JsonFileDocumentStore(
            Path(state_path) if state_path else default_state_path()
        )
        ledger = DriverLedger(store, uid)
        ledger.load()
        result = ledger.import_file(source_path)
        payload = build_import_report_payload(result, uid, str(source_path))
    except Exception as exc:
        logger.error("Import of %s failed: %s", source_path, exc)
        payload = build_error_payload(uid, str(source_path), str(exc))

    return write_report_to_json(payload, report_path)


__all__ = ["DriverLedger", "load_candidates", "now_ms", "run_import"]
