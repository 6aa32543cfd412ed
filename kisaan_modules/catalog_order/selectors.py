"""Catalog order read side."""

from uuid import UUID

from sqlalchemy import select

from kisaan_kernel.domain.values import EntityType
from kisaan_kernel.exceptions import RecordNotFoundError
from kisaan_kernel.selectors.base import BaseSelector
from kisaan_modules.catalog_order.models import CatalogOrder, CatalogOrderStatus
from kisaan_modules.catalog_order.orm import CatalogOrderModel


class CatalogOrderSelector(BaseSelector[CatalogOrderModel]):
    def get(self, order_id: UUID) -> CatalogOrder:
        model = self.session.get(CatalogOrderModel, order_id)
        if model is None:
            raise RecordNotFoundError(EntityType.CATALOG_ORDER.value, str(order_id))
        return model.to_dto()

    def find(
        self,
        *,
        created_by: str | None = None,
        product_id: str | None = None,
        status: CatalogOrderStatus | None = None,
    ) -> list[CatalogOrder]:
        stmt = select(CatalogOrderModel)
        if created_by is not None:
            stmt = stmt.where(CatalogOrderModel.created_by == created_by)
        if product_id is not None:
            stmt = stmt.where(CatalogOrderModel.product_id == product_id)
        if status is not None:
            stmt = stmt.where(CatalogOrderModel.status == CatalogOrderStatus(status).value)
        stmt = stmt.order_by(CatalogOrderModel.created_at, CatalogOrderModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
