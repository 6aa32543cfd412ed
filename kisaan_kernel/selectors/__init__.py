"""
Read-only query selectors for kernel-owned data.
"""

from kisaan_kernel.selectors.base import BaseSelector
from kisaan_kernel.selectors.ledger_selector import LedgerSelector, LineAvailability
from kisaan_kernel.selectors.transition_selector import TransitionEntry, TransitionSelector

__all__ = [
    "BaseSelector",
    "LedgerSelector",
    "LineAvailability",
    "TransitionEntry",
    "TransitionSelector",
]
