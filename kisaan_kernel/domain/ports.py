"""
Contracts the core needs from its external collaborators.

The listing/catalog service, and the notification dispatcher live outside
this repository.  These protocols are the whole of what the core assumes
about them; ``kisaan_services.adapters`` ships in-process implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from kisaan_kernel.domain.values import EntityType, Listing, ProductSnapshot


@runtime_checkable
class ListingReader(Protocol):
    def get_listing(self, listing_id: str) -> Listing:
        """Return the current listing.  Raises ListingNotFoundError."""
        ...


@runtime_checkable
class ProductReader(Protocol):
    def get_product(self, product_id: str) -> ProductSnapshot:
        """Return current prices and stock.  Raises ProductNotFoundError."""
        ...


@dataclass(frozen=True)
class StatusChangeEvent:
    """Emitted after a lifecycle record changes status, is created, or is deleted."""

    entity_type: EntityType
    entity_id: UUID
    action: str
    from_status: str | None
    to_status: str | None
    actor_id: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Event name, e.g. ``fulfillment_offer.approve``."""
        return f"{self.entity_type.value}.{self.action}"


@runtime_checkable
class NotificationSink(Protocol):
    def emit(self, event: StatusChangeEvent) -> None:
        """Hand the event to the dispatcher.  Must not block on delivery."""
        ...
