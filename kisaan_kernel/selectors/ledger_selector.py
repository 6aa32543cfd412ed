"""
Module: kisaan_kernel.selectors.ledger_selector
Responsibility: Read-only availability queries over the quantity ledger.

Availability is derived: quantity_total comes from the listing snapshot the
caller passes in, committed from the ledger.  A line nobody has reserved
against yet has no ledger entry and is fully available.  Results are
advisory, for display; the authoritative capacity check is
LedgerService.reserve.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select

from kisaan_kernel.domain.values import (
    LedgerKey,
    LedgerScope,
    LedgerSnapshot,
    LineItemKey,
    Listing,
)
from kisaan_kernel.models.ledger import LedgerEntry
from kisaan_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LineAvailability:
    key: LineItemKey
    quantity_total: Decimal
    committed: Decimal
    halted: bool = False

    @property
    def remaining(self) -> Decimal:
        return max(self.quantity_total - self.committed, Decimal("0"))


def _to_snapshot(row: LedgerEntry) -> LedgerSnapshot:
    return LedgerSnapshot(
        key=LedgerKey(LedgerScope(row.scope), row.resource_id, row.item, row.variant),
        capacity=row.capacity,
        committed=row.committed,
        version=row.version,
        halted=row.halted,
        halted_reason=row.halted_reason,
    )


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Ledger reads for dashboards and the Offer Builder UI."""

    def entries_for(self, scope: LedgerScope, resource_id: str) -> list[LedgerSnapshot]:
        """All opened entries of one listing or product, in key order."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.scope == LedgerScope(scope).value,
                LedgerEntry.resource_id == resource_id,
            )
            .order_by(LedgerEntry.item, LedgerEntry.variant)
        ).scalars().all()
        return [_to_snapshot(row) for row in rows]

    def availability(self, listing: Listing) -> list[LineAvailability]:
        """Per-line availability of ``listing``, in the listing's line order."""
        by_key = {
            (snap.key.item, snap.key.variant): snap
            for snap in self.entries_for(LedgerScope.LISTING, listing.listing_id)
        }
        result = []
        for line in listing.line_items:
            snap = by_key.get((line.key.name, line.key.type))
            result.append(
                LineAvailability(
                    key=line.key,
                    quantity_total=line.quantity_total if snap is None else snap.capacity,
                    committed=Decimal("0") if snap is None else snap.committed,
                    halted=False if snap is None else snap.halted,
                )
            )
        return result

    def halted_entries(self) -> list[LedgerSnapshot]:
        """Every key currently halted by a consistency fault."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.halted.is_(True))
            .order_by(LedgerEntry.scope, LedgerEntry.resource_id, LedgerEntry.item)
        ).scalars().all()
        return [_to_snapshot(row) for row in rows]
