"""
Ledger Service

Append-only reset history that owns the tank usage baseline.
"""

from .ledger import ResetLedger, ResetEntry, format_label, INITIAL_LABEL

__all__ = ["ResetLedger", "ResetEntry", "format_label", "INITIAL_LABEL"]
