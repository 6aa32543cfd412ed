"""
Bulk Restock Domain Models.

A multi-line purchase order a point-of-sale operator raises to replenish
their own stock from the central catalog.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from kisaan_kernel.domain.values import LedgerKey


class BulkRestockStatus(Enum):
    """Bulk restock order lifecycle states."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RECEIVED = "received"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class BulkLineRequest:
    """A requested line before merging and pricing."""
    product_id: str
    quantity: Any


@dataclass(frozen=True)
class BulkRestockLine:
    """A priced line.  Prices are the catalog prices read at the last edit."""
    product_id: str
    quantity: Decimal
    buying_price: Decimal
    selling_price: Decimal

    @property
    def buying_value(self) -> Decimal:
        return self.quantity * self.buying_price

    @property
    def selling_value(self) -> Decimal:
        return self.quantity * self.selling_price


@dataclass(frozen=True)
class BulkRestockOrder:
    id: UUID
    created_by: str
    status: BulkRestockStatus
    total_buying_value: Decimal
    total_selling_value: Decimal
    idempotency_key: str
    created_at: datetime
    updated_at: datetime
    row_version: int = 1
    lines: tuple[BulkRestockLine, ...] = field(default_factory=tuple)

    def reservations(self) -> tuple[tuple[LedgerKey, Decimal], ...]:
        return tuple(
            (LedgerKey.for_product(line.product_id), line.quantity) for line in self.lines
        )
