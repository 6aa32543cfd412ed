"""
Line merging and totals for bulk restock orders.

Totals are always recomputed from the current lines and current catalog
prices; nothing here caches a price between edits.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from kisaan_kernel.domain.ports import ProductReader
from kisaan_kernel.domain.values import parse_quantity
from kisaan_kernel.exceptions import EmptyOfferError
from kisaan_modules.bulk_restock.models import BulkLineRequest, BulkRestockLine

ENTITY = "bulk_restock_order"


def merge_lines(lines: Iterable[BulkLineRequest | tuple[str, Any]]) -> tuple[tuple[str, Decimal], ...]:
    """
    Validate quantities and merge duplicate products by summation.

    Order of first appearance is kept.

    Raises:
        EmptyOfferError: no lines.
        InvalidQuantityError: a quantity is not a positive finite number.
    """
    merged: dict[str, Decimal] = {}
    for line in lines:
        if isinstance(line, BulkLineRequest):
            product_id, quantity = line.product_id, line.quantity
        else:
            product_id, quantity = line
        qty = parse_quantity(quantity, f"product {product_id}")
        merged[product_id] = merged.get(product_id, Decimal("0")) + qty
    if not merged:
        raise EmptyOfferError(ENTITY)
    return tuple(merged.items())


def price_lines(
    merged: Iterable[tuple[str, Decimal]], products: ProductReader
) -> tuple[BulkRestockLine, ...]:
    """Attach current catalog prices.  Raises ProductNotFoundError."""
    priced = []
    for product_id, quantity in merged:
        product = products.get_product(product_id)
        priced.append(
            BulkRestockLine(
                product_id=product_id,
                quantity=quantity,
                buying_price=product.buying_price,
                selling_price=product.selling_price,
            )
        )
    return tuple(priced)


def compute_totals(lines: Iterable[BulkRestockLine]) -> tuple[Decimal, Decimal]:
    """(total_buying_value, total_selling_value)."""
    buying = Decimal("0")
    selling = Decimal("0")
    for line in lines:
        buying += line.buying_value
        selling += line.selling_value
    return buying, selling
