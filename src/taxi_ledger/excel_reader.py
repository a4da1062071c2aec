"""Excel extraction for ride-detail workbooks.

This module reads the first worksheet of an ``.xlsx`` ride-detail export using
``openpyxl`` and converts rows into :class:`SalesRecord` candidates through the
same header-addressed parser as the CSV reader.
"""

from __future__ import annotations

from pathlib import Path  # Filesystem path management
from typing import List  # Concrete list type for return value

from openpyxl import load_workbook  # Excel file loader

from taxi_ledger.csv_reader import records_from_rows
from taxi_ledger.errors import UnrecognizedFormatError
from taxi_ledger.model import MonthlyStats, SalesRecord  # Domain models used as input/output


def extract_sales_records(
    workbook_path: Path | str,
    sheet_name: str | None = None,
    stats: MonthlyStats | None = None,
) -> List[SalesRecord]:
    """Return ride candidates parsed from an Excel workbook.

    ``sheet_name`` defaults to the active worksheet and ``stats`` supplies the
    driver's payment labels. Raises :class:`FileNotFoundError` if the workbook
    cannot be located and :class:`UnrecognizedFormatError` when the sheet has
    no usable rides.
    """

    workbook_path = Path(workbook_path)  # Ensure we have a Path instance
    if not workbook_path.exists():  # Validate the file exists
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")

    # Open in read-only mode for performance and safety; use cell values only
    workbook = load_workbook(filename=workbook_path, read_only=True, data_only=True)
    try:
        if sheet_name is None:
            sheet = workbook.active
        else:
            try:
                sheet = workbook[sheet_name]  # Access the requested worksheet by name
            except KeyError as exc:
                raise ValueError(f"Worksheet '{sheet_name}' not found in workbook") from exc

        rows = sheet.iter_rows(values_only=True)  # Iterate rows as tuples of raw values
        headers_row = next(rows, None)  # First row should contain column headers
        if headers_row is None:  # Empty sheet edge case
            raise UnrecognizedFormatError(f"Worksheet in {workbook_path.name} is empty")

        headers = [
            str(header).strip() if header is not None else "" for header in headers_row
        ]
        # Skip rows that are entirely blank (openpyxl pads trailing formatting rows)
        data_rows = [row for row in rows if any(v not in (None, "") for v in row)]
        records = records_from_rows(headers, data_rows, stats)
    finally:
        workbook.close()  # Always close the workbook handle

    if not records:
        raise UnrecognizedFormatError(f"No usable sales rows in {workbook_path.name}")
    return records


__all__ = ["extract_sales_records"]  # Public API
