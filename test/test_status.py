from dataclasses import replace

from taxi_ledger.model import DayMetadata
from taxi_ledger.shift import finalize_shift, start_shift
from taxi_ledger.status import (
    monthly_totals,
    payment_breakdown,
    payment_counts,
    project_status,
    resolve_status,
    to_public_document,
)


def _with_rides(session, rides):
    return replace(session, shift=replace(session.shift, records=tuple(rides)))


def test_resolve_status_without_shift(session):
    assert resolve_status(session, "riding") == "offline"
    assert resolve_status(session, "completed") == "completed"


def test_resolve_status_with_shift(session, at):
    opened = start_shift(session, now=at(2024, 3, 25, 10))
    assert resolve_status(opened, "riding") == "riding"
    assert resolve_status(opened, "offline") == "active"


def test_project_status_for_open_shift(session, make_record, at):
    opened = start_shift(session, now=at(2024, 3, 25, 10))
    opened = _with_rides(
        opened,
        [
            make_record(at(2024, 3, 25, 11), amount=2000, ride_type="APP"),
            make_record(at(2024, 3, 25, 12), amount=3000, ride_type="FLOW"),
        ],
    )
    opened = replace(
        opened,
        history=(
            make_record(at(2024, 3, 22, 12), amount=5000),
            make_record(at(2024, 3, 20, 12), amount=7000),  # previous period
        ),
    )

    summary = project_status(opened, "active", at(2024, 3, 25, 13))

    assert summary.status == "active"
    assert summary.shift_sales == 5000
    assert summary.shift_ride_count == 2
    assert summary.dispatch_count == 1
    assert summary.period_sales == 10000
    assert summary.period_rides == 3
    assert (summary.period_start, summary.period_end) == ("2024/03/21", "2024/04/20")
    assert summary.planned_end_time == opened.shift.planned_end_time


def test_project_status_after_finalize_reports_closed_shift(session, make_record, at):
    opened = start_shift(session, now=at(2024, 3, 25, 10))
    opened = _with_rides(opened, [make_record(at(2024, 3, 25, 11), amount=4200)])
    closed = finalize_shift(opened, now=at(2024, 3, 25, 21))

    summary = project_status(closed, "completed", at(2024, 3, 25, 21))

    assert summary.status == "completed"
    assert summary.shift_sales == 4200
    assert summary.shift_ride_count == 1
    assert summary.start_time is None


def test_payment_breakdown_splits_cash_part(make_record, at):
    records = [
        make_record(at(2024, 3, 25, 11), amount=3000, payment_method="CARD", non_cash_amount=2000),
        make_record(at(2024, 3, 25, 12), amount=1000),
    ]
    assert payment_breakdown(records) == {"CARD": 2000, "CASH": 2000}
    assert payment_counts(records) == {"CARD": 1, "CASH": 1}


def test_monthly_totals_respect_attributed_month(session, make_record, at):
    session = replace(
        session,
        history=(
            make_record(at(2024, 3, 20, 12), amount=1000),
            make_record(at(2024, 3, 21, 12), amount=2000),
            make_record(at(2024, 3, 22, 12), amount=4000),
        ),
        day_metadata={"2024/03/22": DayMetadata(attributed_month="2024-03")},
    )

    months = monthly_totals(session)

    assert months["2024-03"]["sales"] == 5000
    assert months["2024-03"]["rides"] == 2
    assert months["2024-04"]["sales"] == 2000


def test_public_document_for_open_shift(session, make_record, at):
    opened = start_shift(replace(session, stats=replace(session.stats, user_name="山田")), now=at(2024, 3, 25, 10))
    opened = _with_rides(opened, [make_record(at(2024, 3, 25, 11), amount=2500)])
    now = at(2024, 3, 25, 12)

    payload = to_public_document(opened, project_status(opened, "riding", now), now)

    assert payload["uid"] == "driver-1"
    assert payload["name"] == "山田"
    assert payload["status"] == "riding"
    assert payload["sales"] == 2500
    assert payload["rideCount"] == 1
    assert payload["lastUpdated"] == now
    assert payload["topRecords"][0]["amount"] == 2500
    assert len(payload["records"]) == 1


def test_public_document_when_offline_has_no_shift_fields(session, at):
    now = at(2024, 3, 25, 12)
    payload = to_public_document(session, project_status(session, "offline", now), now)
    assert payload["status"] == "offline"
    assert "startTime" not in payload
    assert payload["monthlyTotal"] == 0
