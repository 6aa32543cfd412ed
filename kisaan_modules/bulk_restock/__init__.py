"""
Bulk Restock Module.

Multi-line purchase orders replenishing an operator's own stock.  Lines
reserve product stock in the product-level ledger; edits adjust the
reservation and re-price the order from the current catalog.
"""

from kisaan_modules.bulk_restock.models import (
    BulkLineRequest,
    BulkRestockLine,
    BulkRestockOrder,
    BulkRestockStatus,
)
from kisaan_modules.bulk_restock.pricing import compute_totals, merge_lines, price_lines
from kisaan_modules.bulk_restock.workflows import BULK_RESTOCK_WORKFLOW, EDITABLE_STATES

__all__ = [
    "BULK_RESTOCK_WORKFLOW",
    "BulkLineRequest",
    "BulkRestockLine",
    "BulkRestockOrder",
    "BulkRestockStatus",
    "EDITABLE_STATES",
    "compute_totals",
    "merge_lines",
    "price_lines",
]
