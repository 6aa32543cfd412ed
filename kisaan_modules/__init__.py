"""
Lifecycle modules: fulfillment offers, catalog orders, bulk restock orders.

Each module declares its DTOs, ORM models and one ``Workflow``.
``default_gate()`` compiles the three workflows into the single
TransitionGate every status mutation is checked against.
"""

from kisaan_kernel.domain.gate import TransitionGate
from kisaan_kernel.domain.values import EntityType
from kisaan_modules.bulk_restock.workflows import BULK_RESTOCK_WORKFLOW
from kisaan_modules.catalog_order.workflows import CATALOG_ORDER_WORKFLOW
from kisaan_modules.fulfillment.workflows import FULFILLMENT_WORKFLOW

ALL_WORKFLOWS = (
    FULFILLMENT_WORKFLOW,
    CATALOG_ORDER_WORKFLOW,
    BULK_RESTOCK_WORKFLOW,
)


def default_gate() -> TransitionGate:
    return TransitionGate(ALL_WORKFLOWS)


def record_model(entity_type: EntityType):
    """ORM model class persisting records of ``entity_type``."""
    from kisaan_modules.bulk_restock.orm import BulkRestockOrderModel
    from kisaan_modules.catalog_order.orm import CatalogOrderModel
    from kisaan_modules.fulfillment.orm import FulfillmentOfferModel

    return {
        EntityType.FULFILLMENT_OFFER: FulfillmentOfferModel,
        EntityType.CATALOG_ORDER: CatalogOrderModel,
        EntityType.BULK_RESTOCK_ORDER: BulkRestockOrderModel,
    }[EntityType(entity_type)]


__all__ = ["ALL_WORKFLOWS", "default_gate", "record_model"]
