"""
Conflict resolution for network-wide national IDs.

A national ID identifies one worker across every farm. Registering an ID that
is already on record turns into a rejection, a blocked attempt with a
notification, a reactivation or a transfer.
"""

from .models import ConflictAction, ConflictCase, ConflictDecision, NameWarning
from .resolver import ConflictResolver

__all__ = [
    "ConflictAction",
    "ConflictCase",
    "ConflictDecision",
    "ConflictResolver",
    "NameWarning",
]
