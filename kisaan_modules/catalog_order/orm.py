"""
SQLAlchemy ORM persistence model for the Catalog Order module.

Invariants enforced
-------------------
* ``quantity`` and ``unit_price`` are ``Decimal`` -- NEVER float.
* ``product_id`` is a ``String(100)`` reference to the external catalog.
* ``idempotency_key`` is unique.
* ``row_version`` is the optimistic lock for concurrent status changes.
"""

from decimal import Decimal

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kisaan_kernel.db.base import TrackedBase


class CatalogOrderModel(TrackedBase):
    """
    A catalog order.

    Maps to the ``CatalogOrder`` DTO in ``kisaan_modules.catalog_order.models``.
    """

    __tablename__ = "catalog_orders"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_catalog_order_idempotency_key"),
        Index("idx_catalog_order_product", "product_id"),
        Index("idx_catalog_order_created_by", "created_by"),
        Index("idx_catalog_order_status", "status"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version}

    def controlling_principal(self) -> str | None:
        # Accept/reject belongs to the operator side as a whole.
        return None

    def to_dto(self):
        from kisaan_modules.catalog_order.models import CatalogOrder, CatalogOrderStatus

        return CatalogOrder(
            id=self.id,
            created_by=self.created_by,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            status=CatalogOrderStatus(self.status),
            idempotency_key=self.idempotency_key,
            created_at=self.created_at,
            updated_at=self.updated_at,
            row_version=self.row_version,
        )

    def __repr__(self) -> str:
        return f"<CatalogOrderModel {self.id} product={self.product_id} [{self.status}]>"
