"""
Module: kisaan_kernel.models.submission
Responsibility: Idempotency claims for offer/order submissions, and the
    ledger holds each claim has taken.

A claim row is inserted before any reservation is attempted.  The unique
constraint on idempotency_key is what stops a retried submission from
reserving twice: the second attempt either finds the completed claim (and
gets the original record back) or an in-progress claim (and is told to
wait, or recovers it once it has gone stale).

A hold row is written in the same transaction as the ledger UPDATE it
records, and deleted in the same transaction as the matching release.  So
the holds of an in-progress claim are exactly the quantity it still has
committed, whatever happened to the process that took it.  Holds are
deleted when the claim completes: from then on the record owns the
quantity.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kisaan_kernel.db.base import Base, ScaledDecimal, TrackedBase
from kisaan_kernel.domain.values import QUANTITY_PLACES


class ClaimState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubmissionClaim(TrackedBase):
    __tablename__ = "submission_claims"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_submission_idempotency_key"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClaimState.IN_PROGRESS.value
    )
    entity_id: Mapped[UUID | None]

    def __repr__(self) -> str:
        return f"<SubmissionClaim {self.idempotency_key} [{self.state}]>"


class SubmissionHold(Base):
    """Quantity one claim currently has committed against one ledger key."""

    __tablename__ = "submission_holds"

    __table_args__ = (
        UniqueConstraint(
            "claim_id", "scope", "resource_id", "item", "variant",
            name="uq_submission_hold_key",
        ),
    )

    # The claim row's id, not its idempotency key: a recovered key gets a
    # new claim, and a late writer from the old attempt must not touch it.
    claim_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(100), nullable=False)
    item: Mapped[str] = mapped_column(String(200), nullable=False)
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(ScaledDecimal(QUANTITY_PLACES), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SubmissionHold {self.claim_id} "
            f"{self.scope}:{self.resource_id}:{self.item}/{self.variant} {self.quantity}>"
        )
