"""
Values -- immutable domain value objects shared by every lifecycle.

Responsibility:
    Listing and product snapshots read from the external catalog, ledger
    keys, actors and roles, and the quantity parser used at every input
    boundary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Quantities and prices are Decimal, never float.
    - Quantities carry at most QUANTITY_PLACES decimal places, matching the
      Numeric(18, 6) storage type, so what the ledger stores is exactly
      what the actor asked for.
    - Line item keys are unique within a listing (checked on construction).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from kisaan_kernel.exceptions import InvalidQuantityError, NonPositiveQuantityError

QUANTITY_PLACES = 6


def parse_quantity(value: Any, line: str) -> Decimal:
    """
    Convert an actor-supplied quantity to a positive Decimal.

    Accepts Decimal, int, str and float (floats go through ``str`` so 2.5
    stays 2.5).  Booleans, NaN, infinities, zero and negatives are rejected.

    Raises:
        NonPositiveQuantityError: value is zero or negative.
        InvalidQuantityError: value is not a finite number or is too precise.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidQuantityError(line, value, "not a number")
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidQuantityError(line, value, "not a number") from e
    if not quantity.is_finite():
        raise InvalidQuantityError(line, value, "not a finite number")
    if quantity <= 0:
        raise NonPositiveQuantityError(line, value)
    if quantity.as_tuple().exponent < -QUANTITY_PLACES:
        raise InvalidQuantityError(
            line, value, f"more than {QUANTITY_PLACES} decimal places"
        )
    return quantity


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Roles resolved by the identity service for each request."""

    LISTING_OWNER = "listing_owner"
    REQUESTER = "requester"
    OPERATOR = "operator"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """
    A resolved (actor_id, role) pair, passed explicitly into every operation.

    ``delegate_for`` lists the principals this actor may act for: a
    point-of-sale operator managing the farmers registered under them
    decides offers on those farmers' listings.
    """

    actor_id: str
    role: Role
    delegate_for: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.actor_id or not str(self.actor_id).strip():
            raise ValueError("actor_id is required")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if not isinstance(self.delegate_for, frozenset):
            object.__setattr__(self, "delegate_for", frozenset(self.delegate_for))

    def acts_for(self, principal_id: str) -> bool:
        """True if this actor is the principal or holds a delegation for it."""
        return self.actor_id == principal_id or principal_id in self.delegate_for


class EntityType(str, Enum):
    """Lifecycle record types governed by the transition gate."""

    FULFILLMENT_OFFER = "fulfillment_offer"
    CATALOG_ORDER = "catalog_order"
    BULK_RESTOCK_ORDER = "bulk_restock_order"


# ---------------------------------------------------------------------------
# Listings and products (external, read-only)
# ---------------------------------------------------------------------------


class ListingKind(str, Enum):
    SUPPLY = "supply"
    DEMAND = "demand"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True, order=True)
class LineItemKey:
    """Crop line identity within a listing: (name, type), e.g. wheat/organic."""

    name: str
    type: str

    def __str__(self) -> str:
        return f"{self.name}/{self.type}"


@dataclass(frozen=True)
class ListingLineItem:
    key: LineItemKey
    quantity_total: Decimal
    unit_price: Decimal

    def __post_init__(self) -> None:
        for attr in ("quantity_total", "unit_price"):
            value = getattr(self, attr)
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
                object.__setattr__(self, attr, value)
            if value < 0:
                raise ValueError(f"{attr} must be >= 0 for {self.key}")


@dataclass(frozen=True)
class Listing:
    """
    Snapshot of a supply/demand post as returned by the listing service.

    ``quantity_total`` on each line is set once at listing creation; the
    remaining capacity lives in the ledger, not here.
    """

    listing_id: str
    owner_id: str
    kind: ListingKind
    status: ListingStatus
    line_items: tuple[ListingLineItem, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ListingKind(self.kind))
        object.__setattr__(self, "status", ListingStatus(self.status))
        object.__setattr__(self, "line_items", tuple(self.line_items))
        keys = [item.key for item in self.line_items]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Listing {self.listing_id} has duplicate line item keys")

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE

    def line_item(self, key: LineItemKey) -> ListingLineItem | None:
        for item in self.line_items:
            if item.key == key:
                return item
        return None


@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog product: current prices and stock.  ``price`` is the selling price."""

    product_id: str
    name: str
    buying_price: Decimal
    selling_price: Decimal
    stock: Decimal

    def __post_init__(self) -> None:
        for attr in ("buying_price", "selling_price", "stock"):
            value = getattr(self, attr)
            if not isinstance(value, Decimal):
                object.__setattr__(self, attr, Decimal(str(value)))

    @property
    def price(self) -> Decimal:
        return self.selling_price


# ---------------------------------------------------------------------------
# Ledger keys
# ---------------------------------------------------------------------------


class LedgerScope(str, Enum):
    LISTING = "listing"
    PRODUCT = "product"


PRODUCT_STOCK_ITEM = "stock"


@dataclass(frozen=True, order=True)
class LedgerKey:
    """
    Identity of one ledger counter.

    Listing lines use (listing_id, name, type); catalog products use
    (product_id, "stock", "").  Ordering is total so multi-line submissions
    can reserve in a fixed deterministic order.
    """

    scope: LedgerScope
    resource_id: str
    item: str
    variant: str = ""

    @classmethod
    def for_listing_line(cls, listing_id: str, key: LineItemKey) -> LedgerKey:
        return cls(LedgerScope.LISTING, listing_id, key.name, key.type)

    @classmethod
    def for_product(cls, product_id: str) -> LedgerKey:
        return cls(LedgerScope.PRODUCT, product_id, PRODUCT_STOCK_ITEM, "")

    def __str__(self) -> str:
        tail = f"{self.item}/{self.variant}" if self.variant else self.item
        return f"{self.scope.value}:{self.resource_id}:{tail}"


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time read of one ledger entry."""

    key: LedgerKey
    capacity: Decimal
    committed: Decimal
    version: int
    halted: bool = False
    halted_reason: str | None = None

    @property
    def remaining(self) -> Decimal:
        return self.capacity - self.committed

    @property
    def is_consistent(self) -> bool:
        return Decimal("0") <= self.committed <= self.capacity


@dataclass(frozen=True)
class ReservationResult:
    ok: bool
    new_version: int
