"""
Fulfillment Domain Models.

The nouns of fulfillment: an offer by one actor to supply (or take) part of
one or more crop lines of a listing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from kisaan_kernel.domain.values import LedgerKey, LineItemKey


class FulfillmentStatus(Enum):
    """Fulfillment offer lifecycle states."""
    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OfferLine:
    """One crop line of an offer.  unit_price is the listing price at submission."""
    line_item_key: LineItemKey
    quantity: Decimal
    unit_price: Decimal = Decimal("0")

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class FulfillmentOffer:
    """A submitted offer against a listing."""
    id: UUID
    listing_id: str
    listing_owner_id: str
    requested_by: str
    status: FulfillmentStatus
    idempotency_key: str
    created_at: datetime
    updated_at: datetime
    row_version: int = 1
    lines: tuple[OfferLine, ...] = field(default_factory=tuple)

    @property
    def total_value(self) -> Decimal:
        return sum((line.value for line in self.lines), Decimal("0"))

    def reservations(self) -> tuple[tuple[LedgerKey, Decimal], ...]:
        """Ledger keys and quantities this offer holds while not rejected."""
        return tuple(
            (LedgerKey.for_listing_line(self.listing_id, line.line_item_key), line.quantity)
            for line in self.lines
        )
