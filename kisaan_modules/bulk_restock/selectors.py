"""Bulk restock order read side."""

from uuid import UUID

from sqlalchemy import select

from kisaan_kernel.domain.values import EntityType
from kisaan_kernel.exceptions import RecordNotFoundError
from kisaan_kernel.selectors.base import BaseSelector
from kisaan_modules.bulk_restock.models import BulkRestockOrder, BulkRestockStatus
from kisaan_modules.bulk_restock.orm import BulkRestockOrderModel


class BulkRestockSelector(BaseSelector[BulkRestockOrderModel]):
    def get(self, order_id: UUID) -> BulkRestockOrder:
        model = self.session.get(BulkRestockOrderModel, order_id)
        if model is None:
            raise RecordNotFoundError(EntityType.BULK_RESTOCK_ORDER.value, str(order_id))
        return model.to_dto()

    def find(
        self,
        *,
        created_by: str | None = None,
        status: BulkRestockStatus | None = None,
    ) -> list[BulkRestockOrder]:
        stmt = select(BulkRestockOrderModel)
        if created_by is not None:
            stmt = stmt.where(BulkRestockOrderModel.created_by == created_by)
        if status is not None:
            stmt = stmt.where(BulkRestockOrderModel.status == BulkRestockStatus(status).value)
        stmt = stmt.order_by(BulkRestockOrderModel.created_at, BulkRestockOrderModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
