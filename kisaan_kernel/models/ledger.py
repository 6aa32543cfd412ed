"""
Module: kisaan_kernel.models.ledger
Responsibility: ORM persistence for quantity ledger counters.  One row per
    (scope, resource, item, variant): a listing line item or a catalog
    product's stock.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    L1 -- 0 <= committed <= capacity.  Enforced by the conditional UPDATE
          statements in LedgerService and, as a backstop, by CHECK
          constraints.  A row found violating it is halted, never corrected.
    L2 -- version increases by exactly one on every successful mutation.
    L3 -- capacity is a snapshot of the listing's quantity_total taken when
          the entry is opened; the listing itself is never written.

capacity and committed are stored as integers scaled by 10**QUANTITY_PLACES
(ScaledDecimal), so the capacity comparison in SQL is exact on SQLite too.

Failure modes:
    - IntegrityError on a second INSERT for the same key (concurrent open);
      LedgerService treats it as "someone else opened it first".
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kisaan_kernel.db.base import Base, ScaledDecimal
from kisaan_kernel.domain.values import QUANTITY_PLACES


class LedgerEntry(Base):
    """Committed-quantity counter for one ledger key."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "scope", "resource_id", "item", "variant", name="uq_ledger_entry_key"
        ),
        CheckConstraint("committed >= 0", name="ck_ledger_committed_non_negative"),
        CheckConstraint("capacity >= 0", name="ck_ledger_capacity_non_negative"),
    )

    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(100), nullable=False)
    item: Mapped[str] = mapped_column(String(200), nullable=False)
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    capacity: Mapped[Decimal] = mapped_column(ScaledDecimal(QUANTITY_PLACES), nullable=False)
    committed: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_PLACES), nullable=False, default=Decimal("0")
    )
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    halted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    halted_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.scope}:{self.resource_id}:{self.item}/{self.variant} "
            f"{self.committed}/{self.capacity} v{self.version}>"
        )
