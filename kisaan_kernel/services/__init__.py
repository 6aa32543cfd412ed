"""Kernel services: the quantity ledger and the transition trail."""

from kisaan_kernel.services.ledger_service import LedgerService
from kisaan_kernel.services.transition_recorder import TransitionRecorder

__all__ = ["LedgerService", "TransitionRecorder"]
