"""Payments, general ledger and GL code mapping."""
