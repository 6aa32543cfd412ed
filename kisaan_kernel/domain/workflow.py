"""
Canonical workflow types (``kisaan_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Each lifecycle module
(fulfillment, catalog order, bulk restock) declares one ``Workflow``; the
transition gate is compiled from those declarations, so the legal
transition set exists once, as data.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
* At most one transition per (from_state, to_state) pair.
* Every transition and mutation rule names at least one role.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from kisaan_kernel.domain.values import EntityType, Role


@dataclass(frozen=True)
class Transition:
    """A legal status change and the roles allowed to make it.

    ``requires_ownership``: the actor must act for the record's controlling
    principal (listing owner for offers, creator for bulk orders); admins
    are exempt.  ``forbids_creator``: the record's creator may never make
    this transition themselves (no self-approval).  ``releases_reservation``:
    the ledger reservations held by the record are released once the
    transition commits.
    """
    from_state: str
    to_state: str
    action: str
    allowed_roles: frozenset[Role]
    requires_ownership: bool = False
    forbids_creator: bool = False
    releases_reservation: bool = False


@dataclass(frozen=True)
class MutationRule:
    """Non-status mutation (edit, delete) permitted only in ``states``."""
    action: str
    states: tuple[str, ...]
    allowed_roles: frozenset[Role]
    requires_ownership: bool = True


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one lifecycle record type."""
    entity_type: EntityType
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    mutations: tuple[MutationRule, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        name = self.entity_type.value
        if self.initial_state not in self.states:
            raise ValueError(f"{name}: initial state {self.initial_state!r} not in states")
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            for state in (t.from_state, t.to_state):
                if state not in self.states:
                    raise ValueError(f"{name}: transition references unknown state {state!r}")
            if (t.from_state, t.to_state) in seen:
                raise ValueError(
                    f"{name}: duplicate transition {t.from_state} -> {t.to_state}"
                )
            seen.add((t.from_state, t.to_state))
            if not t.allowed_roles:
                raise ValueError(f"{name}: transition {t.action} allows no role")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{name}: terminal state {t.from_state!r} has an outgoing transition")
        for rule in self.mutations:
            unknown = set(rule.states) - set(self.states)
            if unknown:
                raise ValueError(f"{name}: mutation {rule.action} references unknown states {sorted(unknown)}")
            if not rule.allowed_roles:
                raise ValueError(f"{name}: mutation {rule.action} allows no role")

    def outgoing(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)
