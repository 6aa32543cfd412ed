"""
TransitionRecorder -- appends lifecycle mutations to the audit trail.

Responsibility:
    Writes one StatusTransitionRecord per successful submit, status change,
    edit or delete, inside the caller's transaction.

Architecture position:
    Kernel > Services.  Called by the Offer Builder, the lifecycle executor
    and the bulk restock editor.  Does NOT commit: the caller's
    session_scope decides whether the record and the mutation it describes
    land together.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kisaan_kernel.domain.values import Actor, EntityType
from kisaan_kernel.logging_config import get_logger
from kisaan_kernel.models.transition_record import StatusTransitionRecord

logger = get_logger("services.transition_recorder")


class TransitionRecorder:
    """Stateless writer for the transition trail."""

    def record(
        self,
        session: Session,
        *,
        entity_type: EntityType,
        entity_id: UUID,
        action: str,
        from_status: str | None,
        to_status: str | None,
        actor: Actor,
        occurred_at: datetime,
        detail: dict[str, Any] | None = None,
    ) -> StatusTransitionRecord:
        entity_type = EntityType(entity_type)
        # Safe under the record's row_version lock; the unique constraint
        # on (entity, sequence) catches anything that slips past it.
        last = session.execute(
            select(func.max(StatusTransitionRecord.sequence)).where(
                StatusTransitionRecord.entity_type == entity_type.value,
                StatusTransitionRecord.entity_id == entity_id,
            )
        ).scalar_one_or_none()
        row = StatusTransitionRecord(
            entity_type=entity_type.value,
            entity_id=entity_id,
            sequence=(last or 0) + 1,
            action=action,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            occurred_at=occurred_at,
            detail=detail,
        )
        session.add(row)
        logger.debug(
            "transition_recorded",
            extra={
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "action": action,
                "sequence": row.sequence,
            },
        )
        return row
