"""
Catalog Order Domain Models.

A direct purchase of one catalog product (not a listing line) by a single
actor.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from kisaan_kernel.domain.values import LedgerKey


class CatalogOrderStatus(Enum):
    """Catalog order lifecycle states."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class CatalogOrder:
    id: UUID
    created_by: str
    product_id: str
    quantity: Decimal
    unit_price: Decimal
    status: CatalogOrderStatus
    idempotency_key: str
    created_at: datetime
    updated_at: datetime
    row_version: int = 1

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.unit_price

    def reservations(self) -> tuple[tuple[LedgerKey, Decimal], ...]:
        return ((LedgerKey.for_product(self.product_id), self.quantity),)
