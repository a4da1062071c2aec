"""Taxi sales ledger toolkit.

Exposes the driver ledger and the batch ``run_import`` API for programmatic use.
"""

from .business_calendar import billing_period, business_date  # Calendar helpers
from .model import DriverSession, SalesRecord  # Core domain types
from .runner import DriverLedger, run_import  # Public API for driver operations

__all__ = [
    "DriverLedger",
    "DriverSession",
    "SalesRecord",
    "billing_period",
    "business_date",
    "run_import",
]  # Re-exported symbols
