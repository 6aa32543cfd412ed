"""
Catalog Order Workflows.

pending -> accepted | rejected, accepted -> delivered.  Every step belongs
to the seller side (operators, admins), and nobody, admins included, may
decide or deliver an order they placed themselves.
"""

from kisaan_kernel.domain.values import EntityType, Role
from kisaan_kernel.domain.workflow import Transition, Workflow
from kisaan_kernel.logging_config import get_logger

logger = get_logger("modules.catalog_order.workflows")

_SELLER_SIDE = frozenset({Role.OPERATOR, Role.ADMIN})


CATALOG_ORDER_WORKFLOW = Workflow(
    entity_type=EntityType.CATALOG_ORDER,
    description="Catalog order lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "accepted",
        "rejected",
        "delivered",
    ),
    transitions=(
        Transition(
            "pending", "accepted", action="accept",
            allowed_roles=_SELLER_SIDE, forbids_creator=True,
        ),
        Transition(
            "pending", "rejected", action="reject",
            allowed_roles=_SELLER_SIDE, forbids_creator=True,
            releases_reservation=True,
        ),
        Transition(
            "accepted", "delivered", action="deliver",
            allowed_roles=_SELLER_SIDE, forbids_creator=True,
        ),
    ),
    terminal_states=("rejected", "delivered"),
)

logger.info(
    "catalog_order_workflow_registered",
    extra={
        "entity_type": CATALOG_ORDER_WORKFLOW.entity_type.value,
        "state_count": len(CATALOG_ORDER_WORKFLOW.states),
        "transition_count": len(CATALOG_ORDER_WORKFLOW.transitions),
        "initial_state": CATALOG_ORDER_WORKFLOW.initial_state,
    },
)
