"""
SQLAlchemy ORM persistence models for the Bulk Restock module.

Invariants enforced
-------------------
* Prices, quantities and totals are ``Decimal`` -- NEVER float.
* ``total_buying_value`` / ``total_selling_value`` equal the sums of the
  line values; both are rewritten together with the lines on every edit.
* (order_id, product_id) is unique: duplicates are merged before storage.
* ``row_version`` is the optimistic lock for edits and status changes.
* The order is hard-deleted only in draft/pending; lines cascade.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kisaan_kernel.db.base import Base, TrackedBase


class BulkRestockOrderModel(TrackedBase):
    """
    A bulk restock order.

    Maps to the ``BulkRestockOrder`` DTO in ``kisaan_modules.bulk_restock.models``.

    Guarantees:
        - ``status`` follows the bulk restock workflow:
          draft -> pending -> approved -> received -> delivered,
          pending -> rejected.
    """

    __tablename__ = "bulk_restock_orders"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_bulk_restock_idempotency_key"),
        Index("idx_bulk_restock_created_by", "created_by"),
        Index("idx_bulk_restock_status", "status"),
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    total_buying_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_selling_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["BulkRestockLineModel"]] = relationship(
        "BulkRestockLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BulkRestockLineModel.line_number",
    )

    __mapper_args__ = {"version_id_col": row_version}

    def controlling_principal(self) -> str:
        """A bulk order belongs to the operator who raised it."""
        return self.created_by

    def to_dto(self):
        from kisaan_modules.bulk_restock.models import BulkRestockOrder, BulkRestockStatus

        return BulkRestockOrder(
            id=self.id,
            created_by=self.created_by,
            status=BulkRestockStatus(self.status),
            total_buying_value=self.total_buying_value,
            total_selling_value=self.total_selling_value,
            idempotency_key=self.idempotency_key,
            created_at=self.created_at,
            updated_at=self.updated_at,
            row_version=self.row_version,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<BulkRestockOrderModel {self.id} [{self.status}]>"


class BulkRestockLineModel(Base):
    """
    A priced line of a bulk restock order.

    Maps to the ``BulkRestockLine`` DTO; buying/selling values are stored
    for reporting and always equal quantity x price.
    """

    __tablename__ = "bulk_restock_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_bulk_restock_line_product"),
        Index("idx_bulk_restock_line_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("bulk_restock_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    buying_price: Mapped[Decimal] = mapped_column(nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(nullable=False)
    buying_value: Mapped[Decimal] = mapped_column(nullable=False)
    selling_value: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["BulkRestockOrderModel"] = relationship(
        "BulkRestockOrderModel",
        back_populates="lines",
    )

    @classmethod
    def from_dto(cls, dto, line_number: int) -> "BulkRestockLineModel":
        return cls(
            line_number=line_number,
            product_id=dto.product_id,
            quantity=dto.quantity,
            buying_price=dto.buying_price,
            selling_price=dto.selling_price,
            buying_value=dto.buying_value,
            selling_value=dto.selling_value,
        )

    def to_dto(self):
        from kisaan_modules.bulk_restock.models import BulkRestockLine

        return BulkRestockLine(
            product_id=self.product_id,
            quantity=self.quantity,
            buying_price=self.buying_price,
            selling_price=self.selling_price,
        )
