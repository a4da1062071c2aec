import json
from unittest.mock import Mock, patch

import pytest

from taxi_ledger.cli import main
from taxi_ledger.runner import DriverLedger, run_import
from taxi_ledger.store_gateway import PUBLIC_STATUS, USERS, InMemoryDocumentStore, record_to_document

CSV_TEXT = "\n".join(
    [
        "営業日付,乗車(時),乗車(分),乗車地(地名),降車地(地名),売上金額,備考",
        "2024/03/25,10,05,難波,梅田,2800,",
        "2024/03/25,11,30,梅田,京橋,1500,クレジット",
    ]
)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ledger(store, at):
    clock = Mock(return_value=at(2024, 3, 25, 12))
    ledger = DriverLedger(store, "driver-1", clock=clock)
    ledger.subscribe()
    yield ledger
    ledger.close()


# --------------------------------------------------------------------
# DRIVER LEDGER TESTS
# --------------------------------------------------------------------
def test_start_shift_publishes_documents(ledger, store):
    ledger.start_shift(daily_goal=40000)

    private = store.get_document(USERS, "driver-1")
    public = store.get_document(PUBLIC_STATUS, "driver-1")
    assert private["shift"]["dailyGoal"] == 40000
    assert public["status"] == "active"
    assert public["rideCount"] == 0


def test_saved_ride_shows_in_public_status(ledger, store, make_record, at):
    ledger.start_shift()
    ledger.set_riding(True)
    ledger.save_record(make_record(at(2024, 3, 25, 11), amount=3300))

    public = store.get_document(PUBLIC_STATUS, "driver-1")
    assert public["status"] == "riding"
    assert public["sales"] == 3300
    assert ledger.session.shift.records[0].amount == 3300


def test_finalize_publishes_completed_summary(ledger, store, make_record, at):
    ledger.start_shift()
    ledger.save_record(make_record(at(2024, 3, 25, 11), amount=3300))

    report = ledger.finalize_shift()

    public = store.get_document(PUBLIC_STATUS, "driver-1")
    assert report.ride_count == 1
    assert public["status"] == "completed"
    assert public["sales"] == 3300
    assert store.get_document(USERS, "driver-1")["shift"] is None
    assert ledger.session.status == "completed"


def test_remote_write_replaces_local_state(ledger, store, make_record, at):
    ledger.save_record(make_record(at(2024, 3, 24, 12)))
    remote = make_record(at(2024, 3, 23, 12), amount=9900)

    store.set_document(USERS, "driver-1", {"history": [record_to_document(remote)]})

    assert ledger.session.history == (remote,)


def test_save_record_prefills_locations(ledger, make_record, at):
    geocoder = Mock()
    geocoder.reverse_geocode.return_value = {"address": {"suburb": "難波"}}

    saved = ledger.save_record(
        make_record(at(2024, 3, 24, 12), pickup_coords="34.66,135.50"), geocoder
    )

    assert saved.pickup_location == "難波"
    geocoder.reverse_geocode.assert_called_once_with(34.66, 135.50)


def test_geocoder_failure_does_not_block_save(ledger, make_record, at):
    geocoder = Mock()
    geocoder.reverse_geocode.side_effect = TimeoutError("slow")

    saved = ledger.save_record(
        make_record(at(2024, 3, 24, 12), pickup_coords="34.66,135.50"), geocoder
    )

    assert saved.pickup_location == ""
    assert len(ledger.session.history) == 1


def test_import_file_merges_rows(ledger, tmp_path, make_record, at):
    ledger.save_record(make_record(at(2024, 3, 25, 10, 5, 20), amount=2800, id="kept"))
    path = tmp_path / "rides.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")

    result = ledger.import_file(path)

    assert result.updated_count == 1
    assert result.added_count == 1
    ids = {r.id for r in ledger.session.history}
    assert "kept" in ids and len(ids) == 2


def test_import_file_uses_driver_payment_labels(ledger, tmp_path):
    ledger.update_stats({"customPaymentLabels": {"QR": "S.RIDE"}})
    path = tmp_path / "rides.csv"
    path.write_text(CSV_TEXT.replace(",クレジット", ",S.RIDE"), encoding="utf-8")

    ledger.import_file(path)

    methods = [r.payment_method for r in ledger.session.history]
    assert methods == ["CASH", "QR"]


def test_import_for_other_driver_leaves_own_data(ledger, store, make_record, at):
    result = ledger.import_for_driver("driver-2", [make_record(at(2024, 3, 24, 12))])

    assert result.added_count == 1
    assert len(store.get_document(USERS, "driver-2")["history"]) == 1
    assert ledger.session.history == ()


# --------------------------------------------------------------------
# RUN IMPORT / CLI TESTS
# --------------------------------------------------------------------
def test_run_import_writes_success_report(tmp_path):
    source = tmp_path / "rides.csv"
    source.write_text(CSV_TEXT, encoding="utf-8")
    state = tmp_path / "state.json"
    output = tmp_path / "out" / "report.json"

    path = run_import(str(source), uid="driver-1", state_path=str(state), output_path=str(output))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["status"] == "success"
    assert payload["added_count"] == 2
    assert payload["error"] is None
    stored = json.loads(state.read_text(encoding="utf-8"))
    assert len(stored[USERS]["driver-1"]["history"]) == 2


def test_run_import_writes_error_report(tmp_path):
    output = tmp_path / "report.json"

    path = run_import(
        str(tmp_path / "missing.csv"),
        uid="driver-1",
        state_path=str(tmp_path / "state.json"),
        output_path=str(output),
    )

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["status"] == "error"
    assert "missing.csv" in payload["error"]


@patch("taxi_ledger.cli.run_import")
def test_cli_import(mock_run, tmp_path, capsys):
    mock_run.return_value = tmp_path / "report.json"

    code = main(["--state", "s.json", "import", "rides.csv", "--uid", "driver-1"])

    assert code == 0
    mock_run.assert_called_once_with(
        "rides.csv", uid="driver-1", state_path="s.json", output_path=None
    )
    assert "Report written to" in capsys.readouterr().out


def test_cli_period(capsys):
    assert main(["period", "--date", "2024-03-25"]) == 0
    assert capsys.readouterr().out.strip() == "2024/03/21 - 2024/04/20"


def test_cli_period_rejects_bad_closing_day(capsys):
    assert main(["period", "--date", "2024-03-25", "--closing-day", "40"]) == 1
    assert "closing_day" in capsys.readouterr().err
