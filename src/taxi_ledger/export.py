"""CSV and Excel exports of sales records.

``generate_csv`` produces the BOM-prefixed CSV that spreadsheet apps open
directly; ``write_daily_report`` lays out one business day on the paper
daily-report template (30 ride rows, totals computed by formulas).
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Mapping, Sequence

from openpyxl import Workbook  # Excel writer

from taxi_ledger.business_calendar import business_time, to_local
from taxi_ledger.model import DEFAULT_PAYMENT_ORDER, PAYMENT_LABELS, SalesRecord
from taxi_ledger.money import calculate_net_total, calculate_tax_amount
from taxi_ledger.remarks import STOPOVER_SEPARATOR, render_remarks
from taxi_ledger.status import payment_breakdown, payment_counts

logger = logging.getLogger(__name__)

RIDE_LABELS = {
    "FLOW": "流し",
    "WAIT": "待機",
    "APP": "アプリ",
    "HIRE": "ハイヤー",
    "RESERVE": "予約",
    "WIRELESS": "無線",
}

CSV_HEADERS = [
    "日時", "乗車タイプ", "乗車地", "降車地", "運賃", "高速代",
    "決済方法", "非現金決済額", "男性人数", "女性人数", "備考", "要注意客",
]
REPORT_HEADERS = [
    "回数", "時", "分", "乗車地", "経由", "降車地", "男", "女", "料金", "往路",
    "復路", "予約・備考", "カード", "チケット", "アプリ", "乗車区分", "回数",
    "売上B", "売上A", "人員",
]
REPORT_SHEET = "日報"
REPORT_RIDE_ROWS = 30
FIRST_RIDE_ROW = 6  # Rows 1-5 hold the title block and column headers
TOTALS_ROW = FIRST_RIDE_ROW + REPORT_RIDE_ROWS
SUMMED_COLUMNS = ("G", "H", "I", "J", "K", "M", "N", "O", "T")
SUMMARY_ROW = TOTALS_ROW + 2  # Tax line, then one row per payment method


def payment_label(method: str, custom_labels: Mapping[str, str] | None = None) -> str:
    custom_labels = custom_labels or {}
    return custom_labels.get(method) or PAYMENT_LABELS.get(method, method)


def _display_datetime(timestamp: int) -> str:
    moment = to_local(timestamp)
    return f"{moment.year}/{moment.month}/{moment.day} {moment:%H:%M:%S}"


def generate_csv(
    records: Iterable[SalesRecord], custom_labels: Mapping[str, str] | None = None
) -> str:
    """Render records as CSV text with a UTF-8 BOM."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(
            [
                _display_datetime(record.timestamp),
                RIDE_LABELS.get(record.ride_type, record.ride_type),
                record.pickup_location,
                record.dropoff_location,
                record.amount,
                record.toll,
                payment_label(record.payment_method, custom_labels),
                record.non_cash_amount,
                record.passengers_male,
                record.passengers_female,
                render_remarks(record.remarks, record.tags),
                "Yes" if record.is_bad_customer else "",
            ]
        )
    return "\ufeff" + buffer.getvalue()


def write_csv(
    records: Iterable[SalesRecord],
    output_path: Path | str,
    custom_labels: Mapping[str, str] | None = None,
) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # BOM is already part of the text
    output_path.write_text(generate_csv(records, custom_labels), encoding="utf-8")
    return output_path


def _split_by_payment(record: SalesRecord) -> tuple[int | str, int | str, int | str]:
    """Place the ride total in the card, ticket or app column."""
    if record.payment_method == "CASH":
        return "", "", ""
    if record.payment_method == "CARD":
        return record.total, "", ""
    if record.payment_method in ("NET", "TICKET"):
        return "", record.total, ""
    return "", "", record.total


def _ride_row(index: int, record: SalesRecord | None) -> List[object]:
    number = index + 1
    if record is None:
        return [number] + [""] * 15 + [number, "", "", ""]

    moment = to_local(record.timestamp)
    card, ticket, app = _split_by_payment(record)
    return [
        number,
        moment.hour,
        moment.minute,
        record.pickup_location,
        STOPOVER_SEPARATOR.join(record.tags.stopovers),
        record.dropoff_location,
        record.passengers_male or "",
        record.passengers_female or "",
        record.amount,
        record.toll or "",
        "",  # Return toll is folded into toll
        render_remarks(record.remarks, replace(record.tags, stopovers=())),
        card,
        ticket,
        app,
        RIDE_LABELS.get(record.ride_type, ""),
        number,
        "",
        "",
        "",
    ]


def _write_summary(
    sheet, rides: Sequence[SalesRecord], custom_labels: Mapping[str, str] | None
) -> None:
    """Tax split and per-payment totals below the ride table."""
    total = sum(r.amount for r in rides)
    sheet.cell(SUMMARY_ROW, 2, "税込売上")
    sheet.cell(SUMMARY_ROW, 3, total)
    sheet.cell(SUMMARY_ROW, 4, "税抜")
    sheet.cell(SUMMARY_ROW, 5, calculate_net_total(total))
    sheet.cell(SUMMARY_ROW, 6, "消費税")
    sheet.cell(SUMMARY_ROW, 7, calculate_tax_amount(total))

    breakdown = payment_breakdown(rides)
    counts = payment_counts(rides)
    row = SUMMARY_ROW + 1
    for method in DEFAULT_PAYMENT_ORDER:
        if method not in breakdown and method not in counts:
            continue
        sheet.cell(row, 2, payment_label(method, custom_labels))
        sheet.cell(row, 3, breakdown.get(method, 0))
        sheet.cell(row, 4, f"{counts.get(method, 0)}回")
        row += 1


def write_daily_report(
    records: Sequence[SalesRecord],
    output_path: Path | str,
    *,
    day: str,
    start_hour: int,
    rest_minutes: int = 0,
    custom_labels: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> Path:
    """Write one business day's rides onto the daily-report sheet.

    Only the first 30 rides fit the template; the rest are left out of the
    ride rows but still count in the summary below the totals.
    """
    output_path = Path(output_path)
    rides = sorted(records, key=lambda r: r.timestamp)
    if len(rides) > REPORT_RIDE_ROWS:
        logger.warning(
            "Daily report for %s holds %d of %d rides", day, REPORT_RIDE_ROWS, len(rides)
        )
    year, month, date_of_month = (int(part) for part in day.split("/"))
    printed = now or datetime.now()

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = REPORT_SHEET
    sheet.freeze_panes = f"A{FIRST_RIDE_ROW}"

    sheet.append(
        ["", "", "", "運　転　日　報", "", "", "", "",
         f"{year}年", f"{month}月", f"{date_of_month}日", f"{printed:%H:%M}"]
    )
    sheet.append([])
    sheet.append(["", "", "", "出 庫", "入庫", "営業時間", "時間売上"])

    if rides:
        first, last = rides[0].timestamp, rides[-1].timestamp
        worked_ms = max(0, (last - first) - rest_minutes * 60_000)
        worked_hours = max(worked_ms / 3_600_000, 0.1)
        total = sum(r.amount for r in rides)
        hourly = round(total / worked_hours) if total > 0 else 0
        minutes = worked_ms // 60_000
        sheet.append(
            ["", "乗車時間", "",
             business_time(first, start_hour), business_time(last, start_hour),
             f"{minutes // 60}時間{minutes % 60}分", f"{hourly:,}"]
        )
    else:
        sheet.append(["", "乗車時間", "", "", "", "", ""])

    sheet.append(REPORT_HEADERS)
    for index in range(REPORT_RIDE_ROWS):
        record = rides[index] if index < len(rides) else None
        sheet.append(_ride_row(index, record))

    sheet.append(["合 計"] + [""] * 15 + ["合計", "", "", ""])
    for row in range(FIRST_RIDE_ROW, TOTALS_ROW):
        sheet[f"T{row}"] = f"=SUM(G{row}:H{row})"
    for column in SUMMED_COLUMNS:
        sheet[f"{column}{TOTALS_ROW}"] = (
            f"=SUM({column}{FIRST_RIDE_ROW}:{column}{TOTALS_ROW - 1})"
        )
    _write_summary(sheet, rides, custom_labels)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output_path)
    return output_path


__all__ = [
    "CSV_HEADERS",
    "PAYMENT_LABELS",
    "REPORT_HEADERS",
    "RIDE_LABELS",
    "generate_csv",
    "payment_label",
    "write_csv",
    "write_daily_report",
]
