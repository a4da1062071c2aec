"""Command-line interface for the taxi sales ledger."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from .business_calendar import billing_period
from .config import default_state_path
from .export import write_csv, write_daily_report
from .records import all_records, records_in_business_date, records_in_period
from .runner import DriverLedger, run_import
from .store_gateway import JsonFileDocumentStore


def _parse_day(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _cmd_import(args: argparse.Namespace) -> int:
    path = run_import(
        args.source, uid=args.uid, state_path=args.state, output_path=args.output
    )
    print(f"Report written to {path}")
    return 0


def _cmd_period(args: argparse.Namespace) -> int:
    # A bare date means that business day, not the early hours belonging to the day before
    reference = args.date.replace(hour=args.start_hour) if args.date else datetime.now()
    period = billing_period(reference, args.closing_day, args.start_hour)
    print(f"{period.start_date} - {period.end_date}")
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    state = Path(args.state) if args.state else default_state_path()
    ledger = DriverLedger(JsonFileDocumentStore(state), args.uid)
    session = ledger.load()
    start_hour = session.start_hour

    if args.day:
        day = args.day.strftime("%Y/%m/%d")
        records = records_in_business_date(all_records(session), day, start_hour)
        meta = session.day_metadata.get(day)
        path = write_daily_report(
            records,
            args.output,
            day=day,
            start_hour=start_hour,
            rest_minutes=meta.total_rest_minutes if meta else 0,
            custom_labels=session.stats.custom_payment_labels,
        )
    else:
        stats = session.stats
        period = billing_period(datetime.now(), stats.shimebi_day, start_hour)
        records = records_in_period(all_records(session), period.start, period.end, start_hour)
        path = write_csv(records, args.output, stats.custom_payment_labels)
    print(f"Exported {len(records)} rides to {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Taxi driver sales ledger tools")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--state", help="JSON state file (defaults to $TAXI_LEDGER_STATE)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser(
        "import", help="Import a ride-detail CSV or Excel export"
    )
    import_parser.add_argument("source", help="CSV or .xlsx file to import")
    import_parser.add_argument("--uid", required=True, help="Driver id to import into")
    import_parser.add_argument("--output", help="Optional JSON report path")
    import_parser.set_defaults(handler=_cmd_import)

    period_parser = subparsers.add_parser("period", help="Show the billing period")
    period_parser.add_argument("--date", type=_parse_day, help="Reference date YYYY-MM-DD")
    period_parser.add_argument("--closing-day", type=int, default=20)
    period_parser.add_argument("--start-hour", type=int, default=9)
    period_parser.set_defaults(handler=_cmd_period)

    export_parser = subparsers.add_parser(
        "export", help="Export the current period as CSV or one day as a daily report"
    )
    export_parser.add_argument("--uid", required=True)
    export_parser.add_argument("--output", required=True, help="Destination file")
    export_parser.add_argument(
        "--day", type=_parse_day, help="Business date for an .xlsx daily report"
    )
    export_parser.set_defaults(handler=_cmd_export)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.handler(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
