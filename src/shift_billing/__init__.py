"""Attendance approval to parent billing ledger replication."""

__version__ = "0.1.0"
