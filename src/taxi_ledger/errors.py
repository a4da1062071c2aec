"""Exceptions raised by the ledger core."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger errors."""


class UnrecognizedFormatError(LedgerError):
    """Raised when an import source yields no usable sales records.

    Callers treat this as the signal to retry the same bytes under the
    alternate text encoding before giving up.
    """


__all__ = ["LedgerError", "UnrecognizedFormatError"]
