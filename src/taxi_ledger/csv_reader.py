"""Ride-detail CSV parsing.

Reads the ride-detail export produced by the taxi meter back office. Columns
are located by header name, not position. The business date column and one of
the fare columns are required; everything else is optional. Payment method and
ride type are inferred from the remarks and category columns by substring
matching.
"""

from __future__ import annotations

import csv
import logging
import re
from datetime import date, datetime, timedelta
from functools import partial
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from openpyxl.utils.datetime import from_excel  # Excel serial day numbers

from taxi_ledger.business_calendar import to_timestamp
from taxi_ledger.errors import UnrecognizedFormatError
from taxi_ledger.model import (
    PAYMENT_LABELS,
    PAYMENT_METHODS,
    MonthlyStats,
    PaymentMethod,
    RideType,
    SalesRecord,
    new_record_id,
)
from taxi_ledger.money import parse_int
from taxi_ledger.remarks import parse_remarks

logger = logging.getLogger(__name__)

ENCODINGS = ("utf-8-sig", "cp932")  # UTF-8 (BOM tolerant), then Shift-JIS

COL_DATE = "営業日付"
COL_SALES = "売上金額"
COL_FARE = "運賃"
COL_PICKUP_HOUR = "乗車(時)"
COL_PICKUP_MINUTE = "乗車(分)"
COL_PICKUP = "乗車地(地名)"
COL_PICKUP_LAT = "乗車地(緯度)"
COL_PICKUP_LON = "乗車地(経度)"
COL_DROPOFF = "降車地(地名)"
COL_DROPOFF_LAT = "降車地(緯度)"
COL_DROPOFF_LON = "降車地(経度)"
COL_MALE = "(男)"
COL_FEMALE = "(女)"
COL_TOLL_OUT = "往路通行料"
COL_TOLL_BACK = "復路通行料"
COL_NON_CASH = "未収金額"
COL_REMARKS = "備考"
COL_CATEGORY = "区分"
COL_MARK = "目印"

BAD_CUSTOMER_MARKS = ("注意", "★")
LEADING_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})")

# Fallback after custom and default labels; checked in order, first hit wins.
PAYMENT_KEYWORDS: tuple[tuple[tuple[str, ...], PaymentMethod], ...] = (
    (("DiDi", "GO", "Uber"), "DIDI"),
    (("クレジット", "カード"), "CARD"),
    (("ネット決済",), "NET"),
    (("チケット",), "TICKET"),
    (("電子マネー",), "E_MONEY"),
    (("Suica", "交通", "IC"), "TRANSPORT"),
    (("QR", "PayPay"), "QR"),
)
RIDE_KEYWORDS: tuple[tuple[str, RideType], ...] = (
    ("ア", "APP"),
    ("配", "WIRELESS"),
    ("迎", "WIRELESS"),
    ("待", "WAIT"),
)


def infer_payment_method(
    label: str,
    custom_labels: Mapping[str, str] | None = None,
    enabled_methods: Iterable[str] | None = None,
) -> PaymentMethod:
    """Guess the payment method from a remarks cell.

    The driver's own labels are tried first, then the default labels, then a
    keyword list. Only enabled methods are ever returned; no hit means cash.
    """
    enabled = set(PAYMENT_METHODS if enabled_methods is None else enabled_methods)
    for labels in (custom_labels or {}, PAYMENT_LABELS):
        for method, name in labels.items():
            if name and name in label and method in enabled:
                return method
    for keywords, method in PAYMENT_KEYWORDS:
        if method in enabled and any(k in label for k in keywords):
            return method
    return "CASH"


def infer_ride_type(label: str) -> RideType:
    for keyword, ride_type in RIDE_KEYWORDS:
        if keyword in label:
            return ride_type
    return "FLOW"


def has_required_headers(headers: Iterable[str]) -> bool:
    headers = set(headers)
    return COL_DATE in headers and (COL_SALES in headers or COL_FARE in headers)


def _parse_day(value: Any) -> date | None:
    """Read a business date from a date, an Excel serial or ``YYYY/M/D...`` text."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_serial(value)

    text = str(value or "").strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return _from_serial(float(text))
    match = LEADING_DATE.match(text)
    if match is None:
        return None
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError:
        return None


def _from_serial(serial: float) -> date | None:
    if serial <= 0:
        return None
    try:
        return from_excel(serial).date()
    except (ValueError, OverflowError):
        return None


def _coords(lat: str, lon: str) -> str:
    return f"{lat},{lon}" if lat and lon else ""


def records_from_rows(
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    stats: MonthlyStats | None = None,
) -> list[SalesRecord]:
    """Convert header-addressed rows into candidate sales records.

    Rows that are far shorter than the header, carry no readable business
    date or have no positive fare are skipped; unreadable numbers count as
    zero. ``stats`` supplies the driver's payment labels and enabled methods.
    """
    if not has_required_headers(headers):
        raise UnrecognizedFormatError(
            f"Missing required columns {COL_DATE} and {COL_SALES}/{COL_FARE}"
        )
    stats = stats or MonthlyStats()
    header_index: Mapping[str, int] = {h: i for i, h in enumerate(headers)}
    amount_column = COL_SALES if COL_SALES in header_index else COL_FARE

    def _cell(row: Sequence[Any], column: str) -> Any:  # Helper to safely access a column
        idx = header_index.get(column)
        if idx is None or idx >= len(row) or row[idx] is None:
            return ""
        value = row[idx]
        return value.strip().strip('"') if isinstance(value, str) else value

    records: list[SalesRecord] = []
    for line_no, row in enumerate(rows, start=2):
        if len(row) < len(headers) - 10:
            logger.debug("Row %d skipped: only %d columns", line_no, len(row))
            continue
        _value = partial(_cell, row)

        day = _parse_day(_value(COL_DATE))
        if day is None:
            logger.warning("Row %d skipped: unreadable business date", line_no)
            continue

        amount = parse_int(_value(amount_column))
        if amount <= 0:
            logger.debug("Row %d skipped: no fare", line_no)
            continue

        # Hours past 24 belong to the next calendar day
        moment = datetime(day.year, day.month, day.day) + timedelta(
            hours=parse_int(_value(COL_PICKUP_HOUR)),
            minutes=parse_int(_value(COL_PICKUP_MINUTE)),
        )

        toll = max(0, parse_int(_value(COL_TOLL_OUT))) + max(
            0, parse_int(_value(COL_TOLL_BACK))
        )
        pay_label = str(_value(COL_REMARKS))
        method = infer_payment_method(
            pay_label, stats.custom_payment_labels, stats.enabled_payment_methods
        )
        non_cash = 0
        if method != "CASH":
            non_cash = min(max(0, parse_int(_value(COL_NON_CASH))), amount + toll)
        notes, tags = parse_remarks(pay_label)
        mark = str(_value(COL_MARK))

        records.append(
            SalesRecord(
                id=new_record_id(),
                timestamp=to_timestamp(moment),
                amount=amount,
                toll=toll,
                payment_method=method,
                non_cash_amount=non_cash,
                ride_type=infer_ride_type(str(_value(COL_CATEGORY))),
                pickup_location=str(_value(COL_PICKUP)),
                dropoff_location=str(_value(COL_DROPOFF)),
                pickup_coords=_coords(
                    str(_value(COL_PICKUP_LAT)), str(_value(COL_PICKUP_LON))
                ),
                dropoff_coords=_coords(
                    str(_value(COL_DROPOFF_LAT)), str(_value(COL_DROPOFF_LON))
                ),
                passengers_male=max(0, parse_int(_value(COL_MALE))),
                passengers_female=max(0, parse_int(_value(COL_FEMALE))),
                remarks=notes,
                tags=tags,
                is_bad_customer=any(m in mark for m in BAD_CUSTOMER_MARKS),
            )
        )
    return records


def parse_sales_text(text: str, stats: MonthlyStats | None = None) -> list[SalesRecord]:
    """Parse decoded CSV text; tab or comma separated.

    Raises :class:`UnrecognizedFormatError` when the header is not recognised
    or no row yields a record.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise UnrecognizedFormatError("CSV text is empty")

    delimiter = "\t" if "\t" in lines[0] else ","
    rows = list(csv.reader(lines, delimiter=delimiter))
    headers = [h.strip().strip('"') for h in rows[0]]
    records = records_from_rows(headers, rows[1:], stats)
    if not records:
        raise UnrecognizedFormatError("No usable sales rows found")
    return records


def read_sales_csv(
    csv_path: Path | str, stats: MonthlyStats | None = None
) -> list[SalesRecord]:
    """Read a ride-detail CSV, retrying under Shift-JIS when UTF-8 fails."""
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    raw = csv_path.read_bytes()
    for encoding in ENCODINGS:
        try:
            text = raw.decode(encoding)
        except UnicodeDecodeError:
            logger.info("%s is not valid %s", csv_path.name, encoding)
            continue
        try:
            return parse_sales_text(text, stats)
        except UnrecognizedFormatError as exc:
            logger.info("%s unrecognised as %s: %s", csv_path.name, encoding, exc)

    raise UnrecognizedFormatError(f"Unrecognized ride-detail format: {csv_path}")


__all__ = [
    "has_required_headers",
    "infer_payment_method",
    "infer_ride_type",
    "parse_sales_text",
    "read_sales_csv",
    "records_from_rows",
]
