"""ORM models owned by the kernel."""

from kisaan_kernel.models.ledger import LedgerEntry
from kisaan_kernel.models.submission import ClaimState, SubmissionClaim, SubmissionHold
from kisaan_kernel.models.transition_record import StatusTransitionRecord

__all__ = [
    "ClaimState",
    "LedgerEntry",
    "StatusTransitionRecord",
    "SubmissionClaim",
    "SubmissionHold",
]
