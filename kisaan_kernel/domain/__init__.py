"""
Pure domain layer.

Value objects, workflow definitions, the transition gate, retry policy and
the contracts of external collaborators.  NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (except SystemClock)
"""

from kisaan_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from kisaan_kernel.domain.gate import TransitionGate, check_ownership
from kisaan_kernel.domain.ports import (
    ListingReader,
    NotificationSink,
    ProductReader,
    StatusChangeEvent,
)
from kisaan_kernel.domain.retry import RetryPolicy
from kisaan_kernel.domain.values import (
    Actor,
    EntityType,
    LedgerKey,
    LedgerScope,
    LedgerSnapshot,
    LineItemKey,
    Listing,
    ListingKind,
    ListingLineItem,
    ListingStatus,
    ProductSnapshot,
    ReservationResult,
    Role,
    parse_quantity,
)
from kisaan_kernel.domain.workflow import MutationRule, Transition, Workflow

__all__ = [
    "Actor",
    "Clock",
    "DeterministicClock",
    "EntityType",
    "LedgerKey",
    "LedgerScope",
    "LedgerSnapshot",
    "LineItemKey",
    "Listing",
    "ListingKind",
    "ListingLineItem",
    "ListingReader",
    "ListingStatus",
    "MutationRule",
    "NotificationSink",
    "ProductReader",
    "ProductSnapshot",
    "ReservationResult",
    "RetryPolicy",
    "Role",
    "StatusChangeEvent",
    "SystemClock",
    "Transition",
    "TransitionGate",
    "Workflow",
    "check_ownership",
    "parse_quantity",
]
