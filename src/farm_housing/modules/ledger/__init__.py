"""
Stay-period ledger.

Keeps each worker's append-only residency history ordered, non-overlapping
and in agreement with the worker's current assignment.
"""

from .engine import StayPeriodLedger

__all__ = [
    "StayPeriodLedger",
]
