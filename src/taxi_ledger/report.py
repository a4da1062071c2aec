from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from taxi_ledger.business_calendar import to_local
from taxi_ledger.model import ImportDecision, ImportResult, SalesRecord


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialise_decision(decision: ImportDecision) -> Dict[str, Any]:
    return {
        "row": decision.candidate_index,
        "action": decision.action,
        "record_id": decision.record_id,
    }


def _serialise_record(record: SalesRecord) -> Dict[str, Any]:
    return {
        "record_id": record.id,
        "time": to_local(record.timestamp).isoformat(timespec="minutes"),
        "amount": record.amount,
        "payment_method": record.payment_method,
    }


def build_import_report_payload(
    result: ImportResult,
    uid: str,
    source: str,
) -> Dict[str, Any]:
    """Build JSON payload listing inserted and updated rides."""

    by_id = {record.id: record for record in result.records}
    return {
        "status": "success",
        "timestamp": iso_timestamp(),
        "uid": uid,
        "source": source,
        "added_count": result.added_count,
        "updated_count": result.updated_count,
        "decisions": [_serialise_decision(d) for d in result.decisions],
        "added_records": [
            _serialise_record(by_id[d.record_id])
            for d in result.decisions
            if d.action == "insert" and d.record_id in by_id
        ],
        "error": None,
    }


def build_error_payload(uid: str, source: str, error: str) -> Dict[str, Any]:
    return {
        "status": "error",
        "timestamp": iso_timestamp(),
        "uid": uid,
        "source": source,
        "added_count": 0,
        "updated_count": 0,
        "decisions": [],
        "added_records": [],
        "error": error,
    }


def write_report_to_json(payload: Dict[str, Any], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    return output_path


__all__ = [
    "build_error_payload",
    "build_import_report_payload",
    "iso_timestamp",
    "write_report_to_json",
]
