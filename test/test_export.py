from datetime import datetime

from openpyxl import load_workbook

from taxi_ledger.export import CSV_HEADERS, REPORT_HEADERS, generate_csv, write_daily_report
from taxi_ledger.model import RemarkTags


def test_generate_csv_has_bom_and_labels(make_record, at):
    record = make_record(
        at(2024, 3, 25, 10, 5),
        amount=2800,
        payment_method="CARD",
        non_cash_amount=2800,
        ride_type="APP",
        pickup_location='難波 "南口"',
        tags=RemarkTags(payment_vendor="GO"),
        is_bad_customer=True,
    )

    text = generate_csv([record], {"CARD": "カード"})

    assert text.startswith("\ufeff")
    lines = text[1:].splitlines()
    assert lines[0] == ",".join(CSV_HEADERS)
    assert lines[1].startswith("2024/3/25 10:05:00,アプリ,")
    assert '"難波 ""南口"""' in lines[1]
    assert ",カード,2800," in lines[1]
    assert lines[1].endswith("GO決済,Yes")


def test_daily_report_layout(tmp_path, make_record, at):
    rides = [
        make_record(at(2024, 3, 25, 10, 5), amount=2800, passengers_male=1,
                    tags=RemarkTags(stopovers=("心斎橋",))),
        make_record(at(2024, 3, 26, 1, 30), amount=1500, payment_method="CARD",
                    non_cash_amount=1500, passengers_female=2),
    ]
    path = write_daily_report(
        rides, tmp_path / "report.xlsx", day="2024/03/25", start_hour=9,
        now=datetime(2024, 3, 26, 2),
    )

    sheet = load_workbook(path)["日報"]
    assert [cell.value for cell in sheet[5]] == REPORT_HEADERS
    assert sheet["I1"].value == "2024年"
    assert sheet["D4"].value == "10:05"
    assert sheet["E4"].value == "25:30"
    assert sheet["A6"].value == 1
    assert sheet["E6"].value == "心斎橋"
    assert sheet["I6"].value == 2800
    assert sheet["M7"].value == 1500
    assert sheet["A35"].value == 30
    assert sheet["I36"].value == "=SUM(I6:I35)"
    assert sheet["T6"].value == "=SUM(G6:H6)"


def test_daily_report_summary_block(tmp_path, make_record, at):
    rides = [
        make_record(at(2024, 3, 25, 10, 5), amount=2800),
        make_record(at(2024, 3, 25, 11), amount=1500, payment_method="CARD",
                    non_cash_amount=1500),
    ]
    path = write_daily_report(
        rides, tmp_path / "report.xlsx", day="2024/03/25", start_hour=9,
        custom_labels={"CARD": "カード"},
    )

    sheet = load_workbook(path)["日報"]
    assert [sheet[f"{c}38"].value for c in "CEG"] == [4300, 3910, 390]
    assert [c.value for c in sheet[39][1:4]] == ["現金", 2800, "1回"]
    assert [c.value for c in sheet[40][1:4]] == ["カード", 1500, "1回"]


def test_daily_report_warns_when_rides_overflow(tmp_path, make_record, at, caplog):
    rides = [make_record(at(2024, 3, 25, 10) + i * 60_000, amount=1000) for i in range(31)]

    with caplog.at_level("WARNING", logger="taxi_ledger.export"):
        path = write_daily_report(rides, tmp_path / "report.xlsx", day="2024/03/25", start_hour=9)

    sheet = load_workbook(path)["日報"]
    assert sheet["I35"].value == 1000
    assert sheet["C38"].value == 31000
    assert "30 of 31 rides" in caplog.text


def test_daily_report_blanks_zero_passenger_counts(tmp_path, make_record, at):
    path = write_daily_report(
        [make_record(at(2024, 3, 25, 10))], tmp_path / "report.xlsx",
        day="2024/03/25", start_hour=9,
    )

    sheet = load_workbook(path)["日報"]
    assert sheet["G6"].value in (None, "")
    assert sheet["H6"].value in (None, "")
