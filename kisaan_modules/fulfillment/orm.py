"""
SQLAlchemy ORM persistence models for the Fulfillment module.

Responsibility
--------------
Database-backed persistence for fulfillment offers and their lines.

Architecture position
---------------------
**Modules layer** -- ORM models written by the Offer Builder and the
lifecycle executor.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* Quantities and prices use ``Decimal`` (Numeric(18,6)) -- NEVER float.
* Status stored as String(50).
* ``listing_id`` and ``listing_owner_id`` are ``String(100)`` references to
  the external listing service -- no FK.
* ``idempotency_key`` is unique: one offer per submission attempt.
* ``row_version`` is the optimistic lock for concurrent status changes.
* (offer_id, line_number) and (offer_id, item_name, item_type) are unique.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kisaan_kernel.db.base import Base, TrackedBase
from kisaan_kernel.domain.values import LineItemKey


class FulfillmentOfferModel(TrackedBase):
    """
    A fulfillment offer.

    Maps to the ``FulfillmentOffer`` DTO in ``kisaan_modules.fulfillment.models``.
    ``created_by`` is the requester.

    Guarantees:
        - ``status`` follows the fulfillment workflow:
          pending -> [pending_verification ->] approved | rejected.
    """

    __tablename__ = "fulfillment_offers"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_fulfillment_idempotency_key"),
        Index("idx_fulfillment_listing", "listing_id"),
        Index("idx_fulfillment_requested_by", "created_by"),
        Index("idx_fulfillment_status", "status"),
    )

    listing_id: Mapped[str] = mapped_column(String(100), nullable=False)
    listing_owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["FulfillmentOfferLineModel"]] = relationship(
        "FulfillmentOfferLineModel",
        back_populates="offer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FulfillmentOfferLineModel.line_number",
    )

    __mapper_args__ = {"version_id_col": row_version}

    def controlling_principal(self) -> str:
        """Decisions on an offer belong to the listing owner."""
        return self.listing_owner_id

    def to_dto(self):
        from kisaan_modules.fulfillment.models import FulfillmentOffer, FulfillmentStatus

        return FulfillmentOffer(
            id=self.id,
            listing_id=self.listing_id,
            listing_owner_id=self.listing_owner_id,
            requested_by=self.created_by,
            status=FulfillmentStatus(self.status),
            idempotency_key=self.idempotency_key,
            created_at=self.created_at,
            updated_at=self.updated_at,
            row_version=self.row_version,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<FulfillmentOfferModel {self.id} listing={self.listing_id} [{self.status}]>"


class FulfillmentOfferLineModel(Base):
    """
    One crop line of a fulfillment offer.

    Maps to the ``OfferLine`` DTO in ``kisaan_modules.fulfillment.models``.
    """

    __tablename__ = "fulfillment_offer_lines"

    __table_args__ = (
        UniqueConstraint("offer_id", "line_number", name="uq_fulfillment_line_number"),
        UniqueConstraint("offer_id", "item_name", "item_type", name="uq_fulfillment_line_key"),
        Index("idx_fulfillment_line_offer", "offer_id"),
    )

    offer_id: Mapped[UUID] = mapped_column(
        ForeignKey("fulfillment_offers.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    item_type: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    offer: Mapped["FulfillmentOfferModel"] = relationship(
        "FulfillmentOfferModel",
        back_populates="lines",
    )

    def to_dto(self):
        from kisaan_modules.fulfillment.models import OfferLine

        return OfferLine(
            line_item_key=LineItemKey(self.item_name, self.item_type),
            quantity=self.quantity,
            unit_price=self.unit_price,
        )
