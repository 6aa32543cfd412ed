"""
Bulk Restock Workflows.

draft -(send)-> pending -(approve)-> approved -(receive)-> received
-(deliver)-> delivered, and pending -(reject)-> rejected.  The operator who
raised the order sends, receives and delivers it; approval and rejection
are the central counterpart's (admin) call.  Edit and delete are open only
while the order is still in draft or pending.
"""

from kisaan_kernel.domain.values import EntityType, Role
from kisaan_kernel.domain.workflow import MutationRule, Transition, Workflow
from kisaan_kernel.logging_config import get_logger

logger = get_logger("modules.bulk_restock.workflows")

_OPERATOR_SIDE = frozenset({Role.OPERATOR, Role.ADMIN})
_COUNTERPART = frozenset({Role.ADMIN})

EDITABLE_STATES = ("draft", "pending")


BULK_RESTOCK_WORKFLOW = Workflow(
    entity_type=EntityType.BULK_RESTOCK_ORDER,
    description="Bulk restock order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "pending",
        "approved",
        "rejected",
        "received",
        "delivered",
    ),
    transitions=(
        Transition(
            "draft", "pending", action="send",
            allowed_roles=_OPERATOR_SIDE, requires_ownership=True,
        ),
        Transition(
            "pending", "approved", action="approve",
            allowed_roles=_COUNTERPART, forbids_creator=True,
        ),
        Transition(
            "pending", "rejected", action="reject",
            allowed_roles=_COUNTERPART, forbids_creator=True,
            releases_reservation=True,
        ),
        Transition(
            "approved", "received", action="receive",
            allowed_roles=_OPERATOR_SIDE, requires_ownership=True,
        ),
        Transition(
            "received", "delivered", action="deliver",
            allowed_roles=_OPERATOR_SIDE, requires_ownership=True,
        ),
    ),
    terminal_states=("rejected", "delivered"),
    mutations=(
        MutationRule("edit", EDITABLE_STATES, _OPERATOR_SIDE),
        MutationRule("delete", EDITABLE_STATES, _OPERATOR_SIDE),
    ),
)

logger.info(
    "bulk_restock_workflow_registered",
    extra={
        "entity_type": BULK_RESTOCK_WORKFLOW.entity_type.value,
        "state_count": len(BULK_RESTOCK_WORKFLOW.states),
        "transition_count": len(BULK_RESTOCK_WORKFLOW.transitions),
        "initial_state": BULK_RESTOCK_WORKFLOW.initial_state,
    },
)
