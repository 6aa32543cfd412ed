"""
BulkRestockEditor -- edit and delete bulk restock orders.

Responsibility:
    ``edit_bulk_order(order_id, new_lines, actor)`` replaces an order's lines,
    re-prices them from the current catalog, recomputes both totals and
    moves the ledger by the per-product difference.
    ``delete_bulk_order(order_id, actor)`` hard-deletes the order and gives
    its reservations back.

Gating:
    Both are MutationRules of the bulk restock workflow: permitted only in
    draft/pending, to the creating operator or an admin.  Any other status
    is a PermissionDeniedError, checked before the ledger is touched.

Ledger ordering:
    Increases are reserved (all-or-nothing) before the new lines commit;
    decreases and deletions are released only after the commit.  A crash
    in between leaves quantity over-reserved, never under-reserved.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from kisaan_kernel.db.engine import session_scope
from kisaan_kernel.domain.clock import Clock, SystemClock
from kisaan_kernel.domain.gate import TransitionGate, check_ownership
from kisaan_kernel.domain.ports import NotificationSink, ProductReader, StatusChangeEvent
from kisaan_kernel.domain.values import Actor, EntityType, LedgerKey
from kisaan_kernel.exceptions import ConflictError, RecordNotFoundError
from kisaan_kernel.logging_config import LogContext, get_logger
from kisaan_kernel.services.transition_recorder import TransitionRecorder
from kisaan_modules import default_gate
from kisaan_modules.bulk_restock.models import BulkLineRequest, BulkRestockOrder
from kisaan_modules.bulk_restock.orm import BulkRestockLineModel, BulkRestockOrderModel
from kisaan_modules.bulk_restock.pricing import compute_totals, merge_lines, price_lines
from kisaan_services.adapters import emit_safely
from kisaan_services.reservations import ReservationCoordinator, ReservationRequest

logger = get_logger("services.bulk_restock_editor")

ENTITY = EntityType.BULK_RESTOCK_ORDER


class BulkRestockEditor:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        reservations: ReservationCoordinator,
        products: ProductReader,
        *,
        gate: TransitionGate | None = None,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        recorder: TransitionRecorder | None = None,
    ):
        self._session_factory = session_factory
        self._reservations = reservations
        self._products = products
        self._gate = gate or default_gate()
        self._clock = clock or SystemClock()
        self._notifications = notifications
        self._recorder = recorder or TransitionRecorder()

    def _authorize(self, model: BulkRestockOrderModel, action: str, actor: Actor) -> None:
        rule = self._gate.check_mutation(ENTITY, model.status, action, actor)
        check_ownership(
            ENTITY,
            action,
            actor,
            principal_id=model.controlling_principal(),
            creator_id=model.created_by,
            requires_ownership=rule.requires_ownership,
        )

    def _get(self, session: Session, order_id: UUID) -> BulkRestockOrderModel:
        model = session.get(BulkRestockOrderModel, order_id)
        if model is None:
            raise RecordNotFoundError(ENTITY.value, str(order_id))
        return model

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def edit_bulk_order(
        self,
        order_id: UUID,
        new_lines: Iterable[BulkLineRequest | tuple[str, Any]],
        actor: Actor,
    ) -> BulkRestockOrder:
        """
        Replace the order's lines.

        Raises:
            RecordNotFoundError, PermissionDeniedError, EmptyOfferError,
            InvalidQuantityError, ProductNotFoundError,
            InsufficientCapacityError (an increase does not fit),
            ConflictError (the order changed concurrently).
        """
        with LogContext.bind(actor_id=actor.actor_id, entity_id=str(order_id)):
            # Gate first: a locked order is refused before any catalog read.
            with session_scope(self._session_factory) as session:
                model = self._get(session, order_id)
                self._authorize(model, "edit", actor)
                seen_version = model.row_version
                old_quantities = {line.product_id: line.quantity for line in model.lines}

            priced = price_lines(merge_lines(new_lines), self._products)
            new_quantities = {line.product_id: line.quantity for line in priced}

            increases: list[ReservationRequest] = []
            decreases: list[ReservationRequest] = []
            for product_id in sorted(set(old_quantities) | set(new_quantities)):
                delta = new_quantities.get(product_id, Decimal("0")) - old_quantities.get(
                    product_id, Decimal("0")
                )
                key = LedgerKey.for_product(product_id)
                if delta > 0:
                    stock = self._products.get_product(product_id).stock
                    increases.append(ReservationRequest(key, delta, stock))
                elif delta < 0:
                    decreases.append(ReservationRequest(key, -delta, Decimal("0")))

            applied = self._reservations.reserve_all(increases)
            now = self._clock.now()
            try:
                with session_scope(self._session_factory) as session:
                    model = self._get(session, order_id)
                    if model.row_version != seen_version:
                        raise ConflictError(
                            ENTITY.value, str(order_id), seen_version, model.row_version
                        )
                    # Re-check: the status may have moved since the first read.
                    self._authorize(model, "edit", actor)
                    from_status = model.status

                    existing = {line.product_id: line for line in model.lines}
                    next_number = max((line.line_number for line in model.lines), default=0)
                    for line in priced:
                        row = existing.pop(line.product_id, None)
                        if row is None:
                            next_number += 1
                            model.lines.append(BulkRestockLineModel.from_dto(line, next_number))
                        else:
                            row.quantity = line.quantity
                            row.buying_price = line.buying_price
                            row.selling_price = line.selling_price
                            row.buying_value = line.buying_value
                            row.selling_value = line.selling_value
                    for row in existing.values():
                        model.lines.remove(row)

                    buying, selling = compute_totals(priced)
                    model.total_buying_value = buying
                    model.total_selling_value = selling
                    model.updated_at = now
                    self._recorder.record(
                        session,
                        entity_type=ENTITY,
                        entity_id=model.id,
                        action="edit",
                        from_status=from_status,
                        to_status=from_status,
                        actor=actor,
                        occurred_at=now,
                        detail={
                            "lines": {pid: str(qty) for pid, qty in new_quantities.items()},
                            "total_buying_value": str(buying),
                            "total_selling_value": str(selling),
                        },
                    )
                    session.flush()
                    record = model.to_dto()
            except StaleDataError as e:
                self._reservations.release_all(applied)
                raise ConflictError(ENTITY.value, str(order_id)) from e
            except Exception:
                self._reservations.release_all(applied)
                raise

            self._reservations.release_all(decreases)

            logger.info(
                "bulk_order_edited",
                extra={
                    "record_id": record.id,
                    "line_count": len(record.lines),
                    "reserved_lines": len(increases),
                    "released_lines": len(decreases),
                    "total_buying_value": record.total_buying_value,
                    "total_selling_value": record.total_selling_value,
                },
            )
            emit_safely(
                self._notifications,
                StatusChangeEvent(
                    entity_type=ENTITY,
                    entity_id=record.id,
                    action="edit",
                    from_status=from_status,
                    to_status=from_status,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                ),
            )
            return record

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_bulk_order(self, order_id: UUID, actor: Actor) -> None:
        """
        Hard-delete a draft/pending order and release its reservations.

        Raises:
            RecordNotFoundError, PermissionDeniedError, ConflictError.
        """
        with LogContext.bind(actor_id=actor.actor_id, entity_id=str(order_id)):
            now = self._clock.now()
            try:
                with session_scope(self._session_factory) as session:
                    model = self._get(session, order_id)
                    self._authorize(model, "delete", actor)
                    record = model.to_dto()
                    self._recorder.record(
                        session,
                        entity_type=ENTITY,
                        entity_id=model.id,
                        action="delete",
                        from_status=model.status,
                        to_status=None,
                        actor=actor,
                        occurred_at=now,
                    )
                    session.delete(model)
                    session.flush()
            except StaleDataError as e:
                raise ConflictError(ENTITY.value, str(order_id)) from e

            for key, quantity in sorted(record.reservations(), reverse=True):
                self._reservations.ledger.release(key, quantity)

            logger.info(
                "bulk_order_deleted",
                extra={"record_id": record.id, "status": record.status.value},
            )
            emit_safely(
                self._notifications,
                StatusChangeEvent(
                    entity_type=ENTITY,
                    entity_id=record.id,
                    action="delete",
                    from_status=record.status.value,
                    to_status=None,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                ),
            )
