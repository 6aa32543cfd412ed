"""
Module: kisaan_kernel.models.transition_record
Responsibility: Append-only trail of lifecycle changes (status transitions,
    bulk order edits and deletions), one row per successful mutation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Rows are written in the same transaction as the status change they
describe, so the trail never shows a transition that did not commit.  sequence is
allocated under the record's optimistic lock, so it is gap-free per record.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kisaan_kernel.db.base import Base


class StatusTransitionRecord(Base):
    __tablename__ = "status_transitions"

    __table_args__ = (
        Index("idx_status_transition_entity", "entity_type", "entity_id"),
        UniqueConstraint(
            "entity_type", "entity_id", "sequence", name="uq_status_transition_sequence"
        ),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    # 1-based position in this record's trail
    sequence: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusTransitionRecord {self.entity_type} {self.entity_id} "
            f"{self.from_status}->{self.to_status}>"
        )
