"""Shared fixtures for the ledger tests.

All times are naive local datetimes converted through ``to_timestamp`` so the
tests hold in any machine time zone.
"""

from datetime import datetime

import pytest

from taxi_ledger.business_calendar import to_timestamp
from taxi_ledger.model import DriverSession, MonthlyStats, SalesRecord, new_record_id


@pytest.fixture
def at():
    """Return ``at(y, m, d, h=0, mi=0)`` -> epoch milliseconds."""

    def _at(year, month, day, hour=0, minute=0, second=0):
        return to_timestamp(datetime(year, month, day, hour, minute, second))

    return _at


@pytest.fixture
def make_record():
    """Factory for sales records with sensible defaults."""

    def _make(timestamp, amount=1000, **fields):
        fields.setdefault("id", new_record_id())
        return SalesRecord(timestamp=timestamp, amount=amount, **fields)

    return _make


@pytest.fixture
def session():
    """Driver with closing day 20 and a 09:00 business day start."""
    return DriverSession(uid="driver-1", stats=MonthlyStats(shimebi_day=20, business_start_hour=9))
