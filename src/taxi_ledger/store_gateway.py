"""Document-store gateway helpers for driver data.

The realtime backend is treated as a key-value document store with
merge-writes and change subscriptions. This module converts the ledger's
dataclasses to and from the stored camelCase documents, ships an in-memory
and a JSON-file store, and wraps writes in a best-effort :class:`SyncChannel`.
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import copy
import json
import logging
from collections import defaultdict, deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Mapping, Protocol, Tuple

from taxi_ledger.config import (
    DEFAULT_DAILY_GOAL,
    DEFAULT_PLANNED_HOURS,
    SYNC_QUEUE_LIMIT,
    load_stats,
    safe_int,
    stats_to_document,
)
from taxi_ledger.model import (
    ALL_RIDE_TYPES,
    PAYMENT_METHODS,
    BreakState,
    DayMetadata,
    DriverSession,
    RemarkTags,
    SalesRecord,
    Shift,
    new_record_id,
)
from taxi_ledger.remarks import parse_remarks

logger = logging.getLogger(__name__)

USERS = "users"  # Private driver documents
PUBLIC_STATUS = "public_status"  # Projection readable by colleagues

Document = Dict[str, Any]
OnChange = Callable[[Document | None], None]
Unsubscribe = Callable[[], None]

_LEGACY_RIDE_TYPES = {"DISPATCH": "WIRELESS"}


class DocumentStore(Protocol):
    def get_document(self, collection: str, doc_id: str) -> Document | None: ...

    def set_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any], merge: bool = True
    ) -> None: ...

    def subscribe(self, collection: str, doc_id: str, on_change: OnChange) -> Unsubscribe: ...


# --------------------------------------------------------------------
# Serialisation
# --------------------------------------------------------------------
def record_to_document(record: SalesRecord) -> Document:
    return {
        "id": record.id,
        "timestamp": record.timestamp,
        "amount": record.amount,
        "toll": record.toll,
        "paymentMethod": record.payment_method,
        "nonCashAmount": record.non_cash_amount,
        "rideType": record.ride_type,
        "pickupLocation": record.pickup_location,
        "dropoffLocation": record.dropoff_location,
        "pickupCoords": record.pickup_coords,
        "dropoffCoords": record.dropoff_coords,
        "passengersMale": record.passengers_male,
        "passengersFemale": record.passengers_female,
        "remarks": record.remarks,
        "tags": {
            "stopovers": list(record.tags.stopovers),
            "paymentVendor": record.tags.payment_vendor,
            "dispatchVendor": record.tags.dispatch_vendor,
        },
        "isBadCustomer": record.is_bad_customer,
    }


def record_from_document(raw: Mapping[str, Any], now: int) -> SalesRecord:
    """Build a record from stored fields, coercing bad numbers to defaults.

    Documents written before tags existed carry them inside ``remarks``; those
    are split out here.
    """
    amount = max(0, safe_int(raw.get("amount"), 0))
    toll = max(0, safe_int(raw.get("toll"), 0))
    method = raw.get("paymentMethod")
    if method not in PAYMENT_METHODS:
        method = "CASH"
    ride_type = _LEGACY_RIDE_TYPES.get(raw.get("rideType"), raw.get("rideType"))
    if ride_type not in ALL_RIDE_TYPES:
        ride_type = "FLOW"
    non_cash = 0
    if method != "CASH":
        non_cash = min(max(0, safe_int(raw.get("nonCashAmount"), 0)), amount + toll)

    remarks = str(raw.get("remarks") or "")
    raw_tags = raw.get("tags")
    if isinstance(raw_tags, Mapping):
        tags = RemarkTags(
            stopovers=tuple(raw_tags.get("stopovers") or ()),
            payment_vendor=raw_tags.get("paymentVendor"),
            dispatch_vendor=raw_tags.get("dispatchVendor"),
        )
    else:
        remarks, tags = parse_remarks(remarks)

    return SalesRecord(
        id=str(raw.get("id") or new_record_id()),
        timestamp=safe_int(raw.get("timestamp"), now),
        amount=amount,
        toll=toll,
        payment_method=method,
        non_cash_amount=non_cash,
        ride_type=ride_type,
        pickup_location=str(raw.get("pickupLocation") or ""),
        dropoff_location=str(raw.get("dropoffLocation") or ""),
        pickup_coords=str(raw.get("pickupCoords") or ""),
        dropoff_coords=str(raw.get("dropoffCoords") or ""),
        passengers_male=max(0, safe_int(raw.get("passengersMale"), 0)),
        passengers_female=max(0, safe_int(raw.get("passengersFemale"), 0)),
        remarks=remarks,
        tags=tags,
        is_bad_customer=bool(raw.get("isBadCustomer")),
    )


def shift_to_document(shift: Shift | None) -> Document | None:
    if shift is None:
        return None
    return {
        "id": shift.id,
        "startTime": shift.start_time,
        "dailyGoal": shift.daily_goal,
        "plannedHours": shift.planned_hours,
        "totalRestMinutes": shift.total_rest_minutes,
        "records": [record_to_document(r) for r in shift.records],
    }


def sanitize_shift(raw: Mapping[str, Any] | None, now: int) -> Shift | None:
    """Read a stored shift, replacing non-numeric fields with defaults."""
    if not raw:
        return None
    try:
        planned_hours = float(raw.get("plannedHours"))
    except (TypeError, ValueError):
        planned_hours = float(DEFAULT_PLANNED_HOURS)
    records = sorted(
        (record_from_document(r, now) for r in raw.get("records") or ()),
        key=lambda r: r.timestamp,
    )
    return Shift(
        id=str(raw.get("id") or new_record_id()),
        start_time=safe_int(raw.get("startTime"), now),
        daily_goal=safe_int(raw.get("dailyGoal"), DEFAULT_DAILY_GOAL),
        planned_hours=planned_hours,
        total_rest_minutes=max(0, safe_int(raw.get("totalRestMinutes"), 0)),
        records=tuple(records),
    )


def metadata_to_document(metadata: Mapping[str, DayMetadata]) -> Document:
    return {
        day: {
            "memo": meta.memo,
            "attributedMonth": meta.attributed_month,
            "totalRestMinutes": meta.total_rest_minutes,
        }
        for day, meta in metadata.items()
    }


def metadata_from_document(raw: Mapping[str, Any] | None) -> Dict[str, DayMetadata]:
    return {
        day: DayMetadata(
            memo=str(meta.get("memo") or ""),
            attributed_month=str(meta.get("attributedMonth") or ""),
            total_rest_minutes=max(0, safe_int(meta.get("totalRestMinutes"), 0)),
        )
        for day, meta in (raw or {}).items()
        if isinstance(meta, Mapping)
    }


def break_state_to_document(state: BreakState) -> Document:
    return {"isActive": state.is_active, "startTime": state.start_time}


def session_to_document(session: DriverSession) -> Document:
    """Full ``users/{uid}`` payload; every save writes the complete state."""
    return {
        "stats": stats_to_document(session.stats),
        "shift": shift_to_document(session.shift),
        "history": [record_to_document(r) for r in session.history],
        "dayMetadata": metadata_to_document(session.day_metadata),
        "breakState": break_state_to_document(session.break_state),
    }


def session_from_document(uid: str, raw: Mapping[str, Any] | None, now: int) -> DriverSession:
    """Rebuild a session from a stored ``users/{uid}`` document."""
    raw = raw or {}
    shift = sanitize_shift(raw.get("shift"), now)
    history = sorted(
        (record_from_document(r, now) for r in raw.get("history") or ()),
        key=lambda r: r.timestamp,
    )
    raw_break = raw.get("breakState") or {}
    break_state = BreakState(
        is_active=bool(raw_break.get("isActive")) and shift is not None,
        start_time=raw_break.get("startTime"),
    )
    if shift is None:
        status = "offline"
    else:
        status = "break" if break_state.is_active else "active"
    return DriverSession(
        uid=uid,
        stats=load_stats(raw.get("stats")),
        shift=shift,
        history=tuple(history),
        day_metadata=metadata_from_document(raw.get("dayMetadata")),
        break_state=break_state if break_state.is_active else BreakState(),
        status=status,
    )


# --------------------------------------------------------------------
# Stores
# --------------------------------------------------------------------
class InMemoryDocumentStore:
    """Dictionary-backed store with top-level merge semantics."""

    def __init__(self, documents: Mapping[str, Mapping[str, Document]] | None = None):
        self._documents: Dict[Tuple[str, str], Document] = {}
        self._listeners: Dict[Tuple[str, str], List[OnChange]] = defaultdict(list)
        for collection, docs in (documents or {}).items():
            for doc_id, fields in docs.items():
                self._documents[(collection, doc_id)] = copy.deepcopy(dict(fields))

    def get_document(self, collection: str, doc_id: str) -> Document | None:
        document = self._documents.get((collection, doc_id))
        return copy.deepcopy(document) if document is not None else None

    def set_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any], merge: bool = True
    ) -> None:
        key = (collection, doc_id)
        current = self._documents.get(key, {}) if merge else {}
        self._documents[key] = {**current, **copy.deepcopy(dict(fields))}
        self._notify(key)

    def subscribe(self, collection: str, doc_id: str, on_change: OnChange) -> Unsubscribe:
        key = (collection, doc_id)
        self._listeners[key].append(on_change)
        on_change(self.get_document(collection, doc_id))  # Initial snapshot

        def _unsubscribe() -> None:
            if on_change in self._listeners[key]:
                self._listeners[key].remove(on_change)

        return _unsubscribe

    def collections(self) -> Dict[str, Dict[str, Document]]:
        grouped: Dict[str, Dict[str, Document]] = defaultdict(dict)
        for (collection, doc_id), document in self._documents.items():
            grouped[collection][doc_id] = copy.deepcopy(document)
        return dict(grouped)

    def _notify(self, key: Tuple[str, str]) -> None:
        for listener in list(self._listeners.get(key, ())):
            listener(self.get_document(*key))


class JsonFileDocumentStore(InMemoryDocumentStore):
    """In-memory store persisted to one JSON file after every write."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        documents: Mapping[str, Mapping[str, Document]] = {}
        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as f:
                documents = json.load(f)
        super().__init__(documents)

    def set_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any], merge: bool = True
    ) -> None:
        super().set_document(collection, doc_id, fields, merge)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(self.collections(), f, indent=2, ensure_ascii=False)


# --------------------------------------------------------------------
# Best-effort sync
# --------------------------------------------------------------------
class SyncChannel:
    """Bounded queue of pending writes, flushed in order.

    Local state is already applied when a write is queued. A failed write is
    logged and stays queued for the next flush; when the queue is full the
    oldest pending write is dropped, since later writes carry newer state.
    """

    def __init__(self, store: DocumentStore, limit: int = SYNC_QUEUE_LIMIT):
        self.store = store
        self.pending: Deque[Tuple[str, str, Document]] = deque(maxlen=limit)

    def push(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        """Queue a merge-write and try to flush. Returns True when nothing is left."""
        if len(self.pending) == self.pending.maxlen:
            dropped = self.pending[0]
            logger.warning("Sync queue full; dropping write to %s/%s", dropped[0], dropped[1])
        self.pending.append((collection, doc_id, dict(fields)))
        return self.flush()

    def flush(self) -> bool:
        while self.pending:
            collection, doc_id, fields = self.pending[0]
            try:
                self.store.set_document(collection, doc_id, fields, merge=True)
            except Exception as exc:  # Durability is best-effort; keep local state
                logger.error("Write to %s/%s failed: %s", collection, doc_id, exc)
                return False
            self.pending.popleft()
        return True


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "PUBLIC_STATUS",
    "SyncChannel",
    "USERS",
    "record_from_document",
    "record_to_document",
    "sanitize_shift",
    "session_from_document",
    "session_to_document",
    "shift_to_document",
]
