"""
Module: kisaan_kernel.selectors.transition_selector
Responsibility: Read the lifecycle audit trail of a record.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select

from kisaan_kernel.domain.values import EntityType
from kisaan_kernel.models.transition_record import StatusTransitionRecord
from kisaan_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransitionEntry:
    entity_type: EntityType
    entity_id: UUID
    sequence: int
    action: str
    from_status: str | None
    to_status: str | None
    actor_id: str
    actor_role: str
    occurred_at: datetime
    detail: dict[str, Any] | None = None


class TransitionSelector(BaseSelector[StatusTransitionRecord]):
    def history(self, entity_type: EntityType, entity_id: UUID) -> list[TransitionEntry]:
        """Every recorded mutation of one record, oldest first."""
        rows = self.session.execute(
            select(StatusTransitionRecord)
            .where(
                StatusTransitionRecord.entity_type == EntityType(entity_type).value,
                StatusTransitionRecord.entity_id == entity_id,
            )
            .order_by(StatusTransitionRecord.sequence)
        ).scalars().all()
        return [
            TransitionEntry(
                entity_type=EntityType(row.entity_type),
                entity_id=row.entity_id,
                sequence=row.sequence,
                action=row.action,
                from_status=row.from_status,
                to_status=row.to_status,
                actor_id=row.actor_id,
                actor_role=row.actor_role,
                occurred_at=row.occurred_at,
                detail=row.detail,
            )
            for row in rows
        ]
