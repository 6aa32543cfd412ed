"""
Tests for the TransitionGate and the three lifecycle workflows.

The gate table is the single answer to "may this status change happen":
every (entity, from, to) not listed is illegal for every role.
"""

import pytest

from kisaan_kernel.domain.gate import TransitionGate, check_ownership
from kisaan_kernel.domain.values import Actor, EntityType, Role
from kisaan_kernel.domain.workflow import MutationRule, Transition, Workflow
from kisaan_kernel.exceptions import IllegalTransitionError, PermissionDeniedError
from kisaan_modules import ALL_WORKFLOWS, default_gate

OFFER = EntityType.FULFILLMENT_OFFER
CATALOG = EntityType.CATALOG_ORDER
BULK = EntityType.BULK_RESTOCK_ORDER

ADMIN = Actor("admin-1", Role.ADMIN)
OWNER = Actor("farmer-1", Role.LISTING_OWNER)
OPERATOR = Actor("op-1", Role.OPERATOR)
REQUESTER = Actor("buyer-1", Role.REQUESTER)


class TestGateTable:
    """The compiled table matches the declared lifecycles exactly."""

    @pytest.mark.parametrize(
        "entity, status, expected",
        [
            (OFFER, "pending", {"approved", "rejected", "pending_verification"}),
            (OFFER, "pending_verification", {"approved", "rejected"}),
            (OFFER, "approved", set()),
            (OFFER, "rejected", set()),
            (CATALOG, "pending", {"accepted", "rejected"}),
            (CATALOG, "accepted", {"delivered"}),
            (CATALOG, "rejected", set()),
            (CATALOG, "delivered", set()),
            (BULK, "draft", {"pending"}),
            (BULK, "pending", {"approved", "rejected"}),
            (BULK, "approved", {"received"}),
            (BULK, "received", {"delivered"}),
            (BULK, "rejected", set()),
            (BULK, "delivered", set()),
        ],
    )
    def test_next_statuses(self, entity, status, expected):
        assert default_gate().next_statuses(entity, status) == frozenset(expected)

    def test_initial_states(self):
        gate = default_gate()
        assert gate.initial_state(OFFER) == "pending"
        assert gate.initial_state(CATALOG) == "pending"
        assert gate.initial_state(BULK) == "draft"

    def test_unknown_status_has_no_successors(self):
        assert default_gate().next_statuses(OFFER, "shipped") == frozenset()

    def test_table_is_read_only(self):
        table = default_gate().table
        with pytest.raises(TypeError):
            table[(OFFER, "pending")] = {}

    def test_every_workflow_registered_once(self):
        assert {w.entity_type for w in ALL_WORKFLOWS} == set(EntityType)
        with pytest.raises(ValueError, match="Duplicate"):
            TransitionGate(ALL_WORKFLOWS + (ALL_WORKFLOWS[0],))


class TestCheckTransition:
    @pytest.mark.parametrize(
        "entity, from_status, to_status",
        [
            (OFFER, "approved", "rejected"),
            (OFFER, "rejected", "pending"),
            (OFFER, "approved", "pending"),
            (CATALOG, "pending", "delivered"),
            (BULK, "draft", "approved"),
            (BULK, "pending", "received"),
            (BULK, "approved", "delivered"),
            (BULK, "delivered", "draft"),
        ],
    )
    def test_illegal_for_every_role(self, entity, from_status, to_status):
        """Skipping a step or leaving a terminal state is never allowed."""
        for actor in (ADMIN, OWNER, OPERATOR, REQUESTER):
            with pytest.raises(IllegalTransitionError) as exc_info:
                default_gate().check_transition(entity, from_status, to_status, actor)
            assert exc_info.value.code == "ILLEGAL_TRANSITION"

    def test_illegal_is_logged(self, captured_logs):
        with pytest.raises(IllegalTransitionError):
            default_gate().check_transition(OFFER, "approved", "pending", ADMIN)
        records = [r for r in captured_logs() if r["message"] == "illegal_transition_requested"]
        assert records and records[0]["from_status"] == "approved"

    def test_requester_may_not_decide_offers(self):
        with pytest.raises(PermissionDeniedError):
            default_gate().check_transition(OFFER, "pending", "approved", REQUESTER)

    def test_only_admin_requests_verification(self):
        gate = default_gate()
        with pytest.raises(PermissionDeniedError):
            gate.check_transition(OFFER, "pending", "pending_verification", OWNER)
        t = gate.check_transition(OFFER, "pending", "pending_verification", ADMIN)
        assert t.action == "request_verification"

    def test_bulk_approval_is_admin_only(self):
        gate = default_gate()
        with pytest.raises(PermissionDeniedError):
            gate.check_transition(BULK, "pending", "approved", OPERATOR)
        assert gate.check_transition(BULK, "pending", "approved", ADMIN).action == "approve"

    def test_reject_transitions_release(self):
        gate = default_gate()
        assert gate.transition_for(OFFER, "pending", "rejected").releases_reservation
        assert gate.transition_for(OFFER, "pending_verification", "rejected").releases_reservation
        assert gate.transition_for(CATALOG, "pending", "rejected").releases_reservation
        assert gate.transition_for(BULK, "pending", "rejected").releases_reservation
        assert not gate.transition_for(OFFER, "pending", "approved").releases_reservation

    @pytest.mark.parametrize(
        "source,target",
        [("pending", "accepted"), ("pending", "rejected"), ("accepted", "delivered")],
    )
    def test_catalog_order_creator_never_acts_on_own_order(self, source, target):
        assert default_gate().transition_for(CATALOG, source, target).forbids_creator


class TestCheckMutation:
    @pytest.mark.parametrize("status", ["draft", "pending"])
    def test_edit_allowed_while_editable(self, status):
        rule = default_gate().check_mutation(BULK, status, "edit", OPERATOR)
        assert rule.requires_ownership

    @pytest.mark.parametrize("status", ["approved", "rejected", "received", "delivered"])
    @pytest.mark.parametrize("action", ["edit", "delete"])
    def test_locked_statuses_refuse(self, status, action):
        with pytest.raises(PermissionDeniedError) as exc_info:
            default_gate().check_mutation(BULK, status, action, ADMIN)
        assert exc_info.value.action == action

    def test_requester_role_may_not_edit(self):
        with pytest.raises(PermissionDeniedError):
            default_gate().check_mutation(BULK, "draft", "edit", REQUESTER)

    def test_offers_have_no_edit_rule(self):
        with pytest.raises(PermissionDeniedError):
            default_gate().check_mutation(OFFER, "pending", "edit", ADMIN)


class TestCheckOwnership:
    def test_creator_never_decides_own_record(self):
        with pytest.raises(PermissionDeniedError, match="own record"):
            check_ownership(
                OFFER, "approve", ADMIN,
                principal_id="farmer-1", creator_id="admin-1",
                requires_ownership=True, forbids_creator=True,
            )

    def test_non_owner_denied(self):
        stranger = Actor("farmer-9", Role.LISTING_OWNER)
        with pytest.raises(PermissionDeniedError):
            check_ownership(
                OFFER, "approve", stranger,
                principal_id="farmer-1", creator_id="buyer-1",
                requires_ownership=True, forbids_creator=True,
            )

    def test_delegate_and_admin_allowed(self):
        delegate = Actor("op-1", Role.LISTING_OWNER, delegate_for={"farmer-1"})
        for actor in (OWNER, delegate, ADMIN):
            check_ownership(
                OFFER, "approve", actor,
                principal_id="farmer-1", creator_id="buyer-1",
                requires_ownership=True, forbids_creator=True,
            )

    def test_missing_principal_denies_non_admin(self):
        with pytest.raises(PermissionDeniedError):
            check_ownership(
                CATALOG, "accept", OPERATOR,
                principal_id=None, creator_id="buyer-1", requires_ownership=True,
            )


class TestWorkflowValidation:
    def _roles(self):
        return frozenset({Role.ADMIN})

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                entity_type=OFFER, description="x", initial_state="a",
                states=("a",), transitions=(Transition("a", "b", "go", self._roles()),),
            )

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(entity_type=OFFER, description="x", initial_state="z",
                     states=("a",), transitions=())

    def test_terminal_state_cannot_have_outgoing(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                entity_type=OFFER, description="x", initial_state="a",
                states=("a", "b"), transitions=(Transition("b", "a", "back", self._roles()),),
                terminal_states=("b",),
            )

    def test_duplicate_transition_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            Workflow(
                entity_type=OFFER, description="x", initial_state="a", states=("a", "b"),
                transitions=(
                    Transition("a", "b", "go", self._roles()),
                    Transition("a", "b", "again", self._roles()),
                ),
            )

    def test_roleless_rules_rejected(self):
        with pytest.raises(ValueError, match="allows no role"):
            Workflow(
                entity_type=OFFER, description="x", initial_state="a", states=("a", "b"),
                transitions=(Transition("a", "b", "go", frozenset()),),
            )
        with pytest.raises(ValueError, match="unknown states"):
            Workflow(
                entity_type=OFFER, description="x", initial_state="a", states=("a",),
                transitions=(), mutations=(MutationRule("edit", ("q",), self._roles()),),
            )
