"""Ledger: canonical encoding, hash-chained appends and audit verification."""
