"""
Fulfillment read side: offer lookup, filtering and dashboard statistics.

Statistics are derived from the stored offers on every call; there are no
stored aggregates to drift out of step with the records.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select

from kisaan_kernel.domain.values import EntityType
from kisaan_kernel.exceptions import RecordNotFoundError
from kisaan_kernel.selectors.base import BaseSelector
from kisaan_modules.fulfillment.models import (
    FulfillmentOffer,
    FulfillmentStatus,
)
from kisaan_modules.fulfillment.orm import FulfillmentOfferModel


@dataclass(frozen=True)
class CropQuantity:
    name: str
    quantity: Decimal


@dataclass(frozen=True)
class StatusSummary:
    count: int = 0
    value: Decimal = Decimal("0")
    crops: tuple[CropQuantity, ...] = ()


@dataclass(frozen=True)
class FulfillmentStatistics:
    """
    Dashboard numbers for one actor.

    ``status_counts`` has an entry for every status, zero-filled.
    ``monthly`` maps ``YYYY-MM`` (creation month, UTC) to per-status counts.
    """
    total_fulfillments: int
    status_counts: dict[str, StatusSummary] = field(default_factory=dict)
    monthly: dict[str, dict[str, int]] = field(default_factory=dict)


class FulfillmentSelector(BaseSelector[FulfillmentOfferModel]):
    """Read-only queries over fulfillment offers."""

    def get(self, offer_id: UUID) -> FulfillmentOffer:
        model = self.session.get(FulfillmentOfferModel, offer_id)
        if model is None:
            raise RecordNotFoundError(EntityType.FULFILLMENT_OFFER.value, str(offer_id))
        return model.to_dto()

    def find(
        self,
        *,
        requested_by: str | None = None,
        listing_ids: Iterable[str] | None = None,
        status: FulfillmentStatus | None = None,
    ) -> list[FulfillmentOffer]:
        """
        Offers requested by ``requested_by`` and/or made on ``listing_ids``.

        When both scopes are given the union is returned: an actor sees the
        offers they made and the offers made on their own listings.
        """
        stmt = select(FulfillmentOfferModel)
        scopes = []
        if requested_by is not None:
            scopes.append(FulfillmentOfferModel.created_by == requested_by)
        if listing_ids is not None:
            scopes.append(FulfillmentOfferModel.listing_id.in_(list(listing_ids)))
        if scopes:
            stmt = stmt.where(or_(*scopes))
        if status is not None:
            stmt = stmt.where(FulfillmentOfferModel.status == FulfillmentStatus(status).value)
        stmt = stmt.order_by(FulfillmentOfferModel.created_at, FulfillmentOfferModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def statistics(
        self,
        requested_by: str | None = None,
        listing_ids: Iterable[str] | None = None,
    ) -> FulfillmentStatistics:
        offers = self.find(requested_by=requested_by, listing_ids=listing_ids)

        counts: dict[str, int] = {s.value: 0 for s in FulfillmentStatus}
        values: dict[str, Decimal] = {s.value: Decimal("0") for s in FulfillmentStatus}
        crops: dict[str, dict[str, Decimal]] = {s.value: defaultdict(Decimal) for s in FulfillmentStatus}
        monthly: dict[str, dict[str, int]] = {}

        for offer in offers:
            status = offer.status.value
            counts[status] += 1
            values[status] += offer.total_value
            for line in offer.lines:
                crops[status][line.line_item_key.name] += line.quantity
            month = offer.created_at.strftime("%Y-%m")
            bucket = monthly.setdefault(month, {s.value: 0 for s in FulfillmentStatus})
            bucket[status] += 1

        status_counts = {
            status: StatusSummary(
                count=counts[status],
                value=values[status],
                crops=tuple(
                    CropQuantity(name, qty)
                    for name, qty in sorted(
                        crops[status].items(), key=lambda kv: (-kv[1], kv[0])
                    )
                ),
            )
            for status in counts
        }
        return FulfillmentStatistics(
            total_fulfillments=len(offers),
            status_counts=status_counts,
            monthly=dict(sorted(monthly.items())),
        )
