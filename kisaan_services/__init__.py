"""
Orchestration services.

- OfferBuilder: build and submit fulfillment offers, catalog orders and
  bulk restock orders with all-or-nothing ledger reservation.
- LifecycleExecutor: the only path that changes a record's status.
- BulkRestockEditor: edit and delete bulk restock orders in draft/pending.
"""

from kisaan_services.adapters import (
    LoggingNotificationSink,
    RecordingNotificationSink,
    StaticCatalog,
)
from kisaan_services.bulk_restock_editor import BulkRestockEditor
from kisaan_services.lifecycle_executor import LifecycleExecutor
from kisaan_services.offer_builder import (
    BulkOrderDraft,
    CatalogOrderDraft,
    OfferBuilder,
    OfferDraft,
)
from kisaan_services.reservations import ReservationCoordinator, ReservationRequest
from kisaan_services.wiring import MarketplaceCore, build_core, build_core_from_config

__all__ = [
    "BulkOrderDraft",
    "BulkRestockEditor",
    "CatalogOrderDraft",
    "LifecycleExecutor",
    "LoggingNotificationSink",
    "MarketplaceCore",
    "OfferBuilder",
    "OfferDraft",
    "RecordingNotificationSink",
    "ReservationCoordinator",
    "ReservationRequest",
    "StaticCatalog",
    "build_core",
    "build_core_from_config",
]
