"""
Fulfillment Workflows.

State machine for offers made against a listing.  Decisions belong to the
listing owner (or an actor holding a delegation for them) and to admins;
the requester never decides their own offer.
"""

from kisaan_kernel.domain.values import EntityType, Role
from kisaan_kernel.domain.workflow import Transition, Workflow
from kisaan_kernel.logging_config import get_logger

logger = get_logger("modules.fulfillment.workflows")

_DECIDERS = frozenset({Role.LISTING_OWNER, Role.ADMIN})


FULFILLMENT_WORKFLOW = Workflow(
    entity_type=EntityType.FULFILLMENT_OFFER,
    description="Fulfillment offer lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "pending_verification",
        "approved",
        "rejected",
    ),
    transitions=(
        Transition(
            "pending", "approved", action="approve",
            allowed_roles=_DECIDERS, requires_ownership=True, forbids_creator=True,
        ),
        Transition(
            "pending", "rejected", action="reject",
            allowed_roles=_DECIDERS, requires_ownership=True, forbids_creator=True,
            releases_reservation=True,
        ),
        # Triggered by an external verification event; no role other than
        # admin may raise it from inside this core.
        Transition(
            "pending", "pending_verification", action="request_verification",
            allowed_roles=frozenset({Role.ADMIN}), forbids_creator=True,
        ),
        Transition(
            "pending_verification", "approved", action="approve",
            allowed_roles=_DECIDERS, requires_ownership=True, forbids_creator=True,
        ),
        Transition(
            "pending_verification", "rejected", action="reject",
            allowed_roles=_DECIDERS, requires_ownership=True, forbids_creator=True,
            releases_reservation=True,
        ),
    ),
    terminal_states=("approved", "rejected"),
)

logger.info(
    "fulfillment_workflow_registered",
    extra={
        "entity_type": FULFILLMENT_WORKFLOW.entity_type.value,
        "state_count": len(FULFILLMENT_WORKFLOW.states),
        "transition_count": len(FULFILLMENT_WORKFLOW.transitions),
        "initial_state": FULFILLMENT_WORKFLOW.initial_state,
    },
)
