"""Parish Ledger backend: bank reconciliation, general ledger and membership dues."""

__version__ = "1.0.0"
