"""
Catalog Order Module.

Direct orders against catalog product stock.  The reserved stock lives in
the product-level ledger; rejection releases it.
"""

from kisaan_modules.catalog_order.models import CatalogOrder, CatalogOrderStatus
from kisaan_modules.catalog_order.workflows import CATALOG_ORDER_WORKFLOW

__all__ = [
    "CATALOG_ORDER_WORKFLOW",
    "CatalogOrder",
    "CatalogOrderStatus",
]
