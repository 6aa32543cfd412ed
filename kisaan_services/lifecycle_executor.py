"""
LifecycleExecutor -- the one code path that changes a record's status.

Responsibility:
    ``transition(entity_type, entity_id, to_status, actor)`` for fulfillment
    offers, catalog orders and bulk restock orders.  Consults the
    TransitionGate, applies the transition's ownership flags, writes the
    new status and its audit record in one transaction, then applies the
    ledger effect and emits the notification.

Architecture position:
    Services -- orchestration.  Nothing else in the repository assigns to
    a record's ``status`` after creation.

Ordering:
    The status change commits before reservations are released.  If the
    release then fails, the quantity stays committed (a leak an admin can
    see and fix) rather than being handed to another actor while the record
    still claims it.

Failure modes:
    - RecordNotFoundError: no such record.
    - IllegalTransitionError: (entity, from, to) not in the gate table.
    - PermissionDeniedError: role, ownership or self-decision rule violated.
    - ConflictError: the record changed concurrently (row_version mismatch).
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from kisaan_kernel.db.engine import session_scope
from kisaan_kernel.domain.clock import Clock, SystemClock
from kisaan_kernel.domain.gate import TransitionGate, check_ownership
from kisaan_kernel.domain.ports import NotificationSink, StatusChangeEvent
from kisaan_kernel.domain.values import Actor, EntityType
from kisaan_kernel.exceptions import ConflictError, RecordNotFoundError
from kisaan_kernel.logging_config import LogContext, get_logger
from kisaan_kernel.services.ledger_service import LedgerService
from kisaan_kernel.services.transition_recorder import TransitionRecorder
from kisaan_modules import default_gate, record_model
from kisaan_services.adapters import emit_safely

logger = get_logger("services.lifecycle_executor")


class LifecycleExecutor:
    """
    Gate-checked status transitions.

    Contract:
        Returns the updated record DTO.  Every error propagates unchanged;
        a ConflictError here is not retried, since the caller must look at
        the record's new status before deciding again.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        ledger: LedgerService,
        *,
        gate: TransitionGate | None = None,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        recorder: TransitionRecorder | None = None,
    ):
        self._session_factory = session_factory
        self._ledger = ledger
        self._gate = gate or default_gate()
        self._clock = clock or SystemClock()
        self._notifications = notifications
        self._recorder = recorder or TransitionRecorder()

    @property
    def gate(self) -> TransitionGate:
        return self._gate

    def transition(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        to_status: str | Enum,
        actor: Actor,
    ):
        entity_type = EntityType(entity_type)
        target = to_status.value if isinstance(to_status, Enum) else str(to_status)
        model_cls = record_model(entity_type)

        with LogContext.bind(actor_id=actor.actor_id, entity_id=str(entity_id)):
            now = self._clock.now()
            try:
                with session_scope(self._session_factory) as session:
                    model = session.get(model_cls, entity_id)
                    if model is None:
                        raise RecordNotFoundError(entity_type.value, str(entity_id))
                    from_status = model.status

                    transition = self._gate.check_transition(
                        entity_type, from_status, target, actor
                    )
                    check_ownership(
                        entity_type,
                        transition.action,
                        actor,
                        principal_id=model.controlling_principal(),
                        creator_id=model.created_by,
                        requires_ownership=transition.requires_ownership,
                        forbids_creator=transition.forbids_creator,
                    )

                    model.status = target
                    model.updated_at = now
                    self._recorder.record(
                        session,
                        entity_type=entity_type,
                        entity_id=model.id,
                        action=transition.action,
                        from_status=from_status,
                        to_status=target,
                        actor=actor,
                        occurred_at=now,
                    )
                    session.flush()
                    record = model.to_dto()
            except StaleDataError as e:
                logger.info(
                    "transition_conflict",
                    extra={"entity_type": entity_type.value, "to_status": target},
                )
                raise ConflictError(entity_type.value, str(entity_id)) from e

            logger.info(
                "status_transitioned",
                extra={
                    "entity_type": entity_type.value,
                    "action": transition.action,
                    "from_status": from_status,
                    "to_status": target,
                },
            )

            if transition.releases_reservation:
                self._release(entity_type, record)

            emit_safely(
                self._notifications,
                StatusChangeEvent(
                    entity_type=entity_type,
                    entity_id=record.id,
                    action=transition.action,
                    from_status=from_status,
                    to_status=target,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                ),
            )
            return record

    def _release(self, entity_type: EntityType, record) -> None:
        for key, quantity in sorted(record.reservations(), reverse=True):
            try:
                self._ledger.release(key, quantity)
            except Exception:
                logger.error(
                    "release_after_transition_failed",
                    extra={
                        "entity_type": entity_type.value,
                        "record_id": record.id,
                        "ledger_key": str(key),
                        "quantity": quantity,
                    },
                    exc_info=True,
                )
                raise
