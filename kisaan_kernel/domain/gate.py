"""
TransitionGate -- the single permission table for every status mutation.

Responsibility:
    Compiles the module workflows into one lookup table
    ``(entity_type, from_status) -> {to_status: allowed_roles}`` and answers
    two questions before any record is touched: is this status change legal
    at all, and may this actor make it.  Edit/delete rules are answered from
    the same place.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Consulted by the lifecycle executor
    and the bulk restock editor; no other code path mutates a status.

Invariants enforced:
    - (entity, from, to) absent from the table -> IllegalTransitionError,
      regardless of who asks.
    - Present but the actor's role is not allowed -> PermissionDeniedError.
    - Edit/delete outside the rule's states -> PermissionDeniedError.

Ownership checks (listing owner, record creator) need the record and the
listing, so they are evaluated by the executor with ``check_ownership``
once the gate has returned the matching Transition or MutationRule.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from kisaan_kernel.domain.values import Actor, EntityType, Role
from kisaan_kernel.domain.workflow import MutationRule, Transition, Workflow
from kisaan_kernel.exceptions import IllegalTransitionError, PermissionDeniedError
from kisaan_kernel.logging_config import get_logger

logger = get_logger("domain.gate")

GateTable = Mapping[tuple[EntityType, str], Mapping[str, frozenset[Role]]]


class TransitionGate:
    """Lookup table of legal transitions, keyed by entity type and status."""

    def __init__(self, workflows: Iterable[Workflow]):
        self._workflows: dict[EntityType, Workflow] = {}
        self._transitions: dict[tuple[EntityType, str, str], Transition] = {}
        table: dict[tuple[EntityType, str], dict[str, frozenset[Role]]] = {}

        for workflow in workflows:
            if workflow.entity_type in self._workflows:
                raise ValueError(f"Duplicate workflow for {workflow.entity_type.value}")
            self._workflows[workflow.entity_type] = workflow
            for state in workflow.states:
                table[(workflow.entity_type, state)] = {}
            for t in workflow.transitions:
                table[(workflow.entity_type, t.from_state)][t.to_state] = t.allowed_roles
                self._transitions[(workflow.entity_type, t.from_state, t.to_state)] = t

        self._table: GateTable = MappingProxyType(
            {k: MappingProxyType(v) for k, v in table.items()}
        )

    @property
    def table(self) -> GateTable:
        """Read-only view of the whole gate table."""
        return self._table

    def workflow(self, entity_type: EntityType) -> Workflow:
        return self._workflows[EntityType(entity_type)]

    def initial_state(self, entity_type: EntityType) -> str:
        return self.workflow(entity_type).initial_state

    def next_statuses(self, entity_type: EntityType, status: str) -> frozenset[str]:
        """Statuses reachable in one step from ``status`` (any role)."""
        return frozenset(self._table.get((EntityType(entity_type), status), {}))

    def transition_for(
        self, entity_type: EntityType, from_status: str, to_status: str
    ) -> Transition:
        """Return the declared transition or raise IllegalTransitionError."""
        entity_type = EntityType(entity_type)
        transition = self._transitions.get((entity_type, from_status, to_status))
        if transition is None:
            logger.warning(
                "illegal_transition_requested",
                extra={
                    "entity_type": entity_type.value,
                    "from_status": from_status,
                    "to_status": to_status,
                },
            )
            raise IllegalTransitionError(entity_type.value, from_status, to_status)
        return transition

    def check_transition(
        self,
        entity_type: EntityType,
        from_status: str,
        to_status: str,
        actor: Actor,
    ) -> Transition:
        """Legal-and-permitted check for a status change."""
        transition = self.transition_for(entity_type, from_status, to_status)
        if actor.role not in transition.allowed_roles:
            raise PermissionDeniedError(
                EntityType(entity_type).value,
                transition.action,
                actor.actor_id,
                f"role {actor.role.value} may not move {from_status} -> {to_status}",
            )
        return transition

    def check_mutation(
        self,
        entity_type: EntityType,
        status: str,
        action: str,
        actor: Actor,
    ) -> MutationRule:
        """Check an edit/delete request against the mutation rules."""
        entity_type = EntityType(entity_type)
        rule = next(
            (r for r in self.workflow(entity_type).mutations if r.action == action),
            None,
        )
        if rule is None or status not in rule.states:
            raise PermissionDeniedError(
                entity_type.value,
                action,
                actor.actor_id,
                f"{action} is not permitted in status {status}",
            )
        if actor.role not in rule.allowed_roles:
            raise PermissionDeniedError(
                entity_type.value,
                action,
                actor.actor_id,
                f"role {actor.role.value} may not {action}",
            )
        return rule


def check_ownership(
    entity_type: EntityType,
    action: str,
    actor: Actor,
    *,
    principal_id: str | None,
    creator_id: str,
    requires_ownership: bool,
    forbids_creator: bool = False,
) -> None:
    """
    Apply the ownership flags of a Transition or MutationRule.

    Admins are exempt from ``requires_ownership`` but never from
    ``forbids_creator``: nobody decides their own offer.
    """
    entity = EntityType(entity_type).value
    if forbids_creator and actor.actor_id == creator_id:
        raise PermissionDeniedError(
            entity, action, actor.actor_id, "the creator may not decide their own record"
        )
    if requires_ownership and actor.role != Role.ADMIN:
        if principal_id is None or not actor.acts_for(principal_id):
            raise PermissionDeniedError(
                entity, action, actor.actor_id, "actor does not act for the record owner"
            )
