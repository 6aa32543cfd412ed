"""
In-process implementations of the external collaborator contracts.

``StaticCatalog`` answers listing and product reads from memory; it backs
the test suite and local tooling.  The notification sinks either log each
event or keep it for inspection.  ``emit_safely`` is how every service
hands an event over: delivery problems are logged and never reach the
caller, whose state change has already committed.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from kisaan_kernel.domain.ports import NotificationSink, StatusChangeEvent
from kisaan_kernel.domain.values import Listing, ProductSnapshot
from kisaan_kernel.exceptions import ListingNotFoundError, ProductNotFoundError
from kisaan_kernel.logging_config import get_logger

logger = get_logger("services.adapters")


class StaticCatalog:
    """Listing and product reader over in-memory snapshots."""

    def __init__(
        self,
        listings: Iterable[Listing] = (),
        products: Iterable[ProductSnapshot] = (),
    ):
        self._lock = threading.Lock()
        self._listings = {listing.listing_id: listing for listing in listings}
        self._products = {product.product_id: product for product in products}

    def get_listing(self, listing_id: str) -> Listing:
        with self._lock:
            listing = self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    def get_product(self, product_id: str) -> ProductSnapshot:
        with self._lock:
            product = self._products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def put_listing(self, listing: Listing) -> None:
        with self._lock:
            self._listings[listing.listing_id] = listing

    def put_product(self, product: ProductSnapshot) -> None:
        """Replace a product snapshot, e.g. after a price change."""
        with self._lock:
            self._products[product.product_id] = product


class LoggingNotificationSink:
    """Writes each event to the structured log."""

    def emit(self, event: StatusChangeEvent) -> None:
        logger.info(
            "status_change_event",
            extra={
                "event_name": event.name,
                "entity_type": event.entity_type.value,
                "entity_id": event.entity_id,
                "from_status": event.from_status,
                "to_status": event.to_status,
                "event_actor_id": event.actor_id,
            },
        )


class RecordingNotificationSink:
    """Keeps emitted events in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[StatusChangeEvent] = []

    def emit(self, event: StatusChangeEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[StatusChangeEvent]:
        with self._lock:
            return list(self._events)

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def emit_safely(sink: NotificationSink | None, event: StatusChangeEvent) -> None:
    """Fire-and-forget hand-off.  Failures are logged, never raised."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        logger.exception(
            "notification_emit_failed",
            extra={"event_name": event.name, "entity_id": event.entity_id},
        )
