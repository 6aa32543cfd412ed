"""
Tests for gate-checked status transitions (kisaan_services/lifecycle_executor.py).
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from conftest import RICE, WHEAT
from kisaan_kernel.db.engine import session_scope
from kisaan_kernel.domain.values import Actor, EntityType, LedgerKey, Role
from kisaan_kernel.exceptions import (
    ConflictError,
    IllegalTransitionError,
    PermissionDeniedError,
    RecordNotFoundError,
)
from kisaan_kernel.selectors.transition_selector import TransitionSelector
from kisaan_modules.bulk_restock.models import BulkRestockStatus
from kisaan_modules.catalog_order.models import CatalogOrderStatus
from kisaan_modules.fulfillment.models import FulfillmentStatus
from kisaan_modules.fulfillment.orm import FulfillmentOfferModel

OFFER = EntityType.FULFILLMENT_OFFER
CATALOG = EntityType.CATALOG_ORDER
BULK = EntityType.BULK_RESTOCK_ORDER

WHEAT_KEY = LedgerKey.for_listing_line("L1", WHEAT)
RICE_KEY = LedgerKey.for_listing_line("L1", RICE)


def _committed(ledger, key) -> Decimal:
    return ledger.read(key).committed


class TestFulfillmentDecisions:
    def test_reject_releases_every_line(self, submit_offer, executor, farmer, ledger):
        offer = submit_offer([(WHEAT, 3), (RICE, 2)])
        rejected = executor.transition(OFFER, offer.id, FulfillmentStatus.REJECTED, farmer)

        assert rejected.status is FulfillmentStatus.REJECTED
        assert _committed(ledger, WHEAT_KEY) == Decimal("0")
        assert _committed(ledger, RICE_KEY) == Decimal("0")

    def test_approve_keeps_reservation(self, submit_offer, executor, farmer, ledger):
        offer = submit_offer([(WHEAT, 3)])
        executor.transition(OFFER, offer.id, "approved", farmer)
        assert _committed(ledger, WHEAT_KEY) == Decimal("3")

    def test_terminal_states_are_final(self, submit_offer, executor, farmer, admin, ledger):
        offer = submit_offer([(WHEAT, 3)])
        executor.transition(OFFER, offer.id, "approved", farmer)
        with pytest.raises(IllegalTransitionError):
            executor.transition(OFFER, offer.id, "rejected", admin)
        with pytest.raises(IllegalTransitionError):
            executor.transition(OFFER, offer.id, "pending", admin)
        assert _committed(ledger, WHEAT_KEY) == Decimal("3")

    def test_requester_cannot_decide(self, submit_offer, executor, buyer, other_buyer):
        offer = submit_offer([(WHEAT, 3)])
        for actor in (buyer, other_buyer):
            with pytest.raises(PermissionDeniedError):
                executor.transition(OFFER, offer.id, "approved", actor)

    def test_other_listing_owner_cannot_decide(self, submit_offer, executor):
        offer = submit_offer([(WHEAT, 3)])
        with pytest.raises(PermissionDeniedError, match="does not act for"):
            executor.transition(OFFER, offer.id, "approved", Actor("farmer-2", Role.LISTING_OWNER))

    def test_delegate_may_decide(self, submit_offer, executor):
        offer = submit_offer([(WHEAT, 3)])
        delegate = Actor("pos-1", Role.LISTING_OWNER, delegate_for={"farmer-1"})
        assert executor.transition(OFFER, offer.id, "rejected", delegate).status is FulfillmentStatus.REJECTED

    def test_admin_cannot_decide_own_offer(self, submit_offer, executor, admin):
        offer = submit_offer([(WHEAT, 3)], actor=admin)
        with pytest.raises(PermissionDeniedError, match="own record"):
            executor.transition(OFFER, offer.id, "approved", admin)
        other_admin = Actor("admin-2", Role.ADMIN)
        assert executor.transition(OFFER, offer.id, "approved", other_admin).status is FulfillmentStatus.APPROVED

    def test_verification_path(self, submit_offer, executor, farmer, admin, ledger):
        offer = submit_offer([(WHEAT, 4)])
        with pytest.raises(PermissionDeniedError):
            executor.transition(OFFER, offer.id, "pending_verification", farmer)
        executor.transition(OFFER, offer.id, "pending_verification", admin)
        executor.transition(OFFER, offer.id, "rejected", farmer)
        assert _committed(ledger, WHEAT_KEY) == Decimal("0")

    def test_denied_decision_changes_nothing(self, submit_offer, executor, buyer, ledger, session, notifications):
        offer = submit_offer([(WHEAT, 3)])
        notifications.clear()
        with pytest.raises(PermissionDeniedError):
            executor.transition(OFFER, offer.id, "rejected", buyer)
        assert _committed(ledger, WHEAT_KEY) == Decimal("3")
        assert len(TransitionSelector(session).history(OFFER, offer.id)) == 1
        assert notifications.names() == []

    def test_unknown_record(self, executor, admin):
        with pytest.raises(RecordNotFoundError):
            executor.transition(OFFER, uuid4(), "approved", admin)

    def test_history_and_notifications(self, submit_offer, executor, farmer, admin, session, notifications):
        offer = submit_offer([(WHEAT, 3)])
        executor.transition(OFFER, offer.id, "pending_verification", admin)
        executor.transition(OFFER, offer.id, "approved", farmer)

        history = TransitionSelector(session).history(OFFER, offer.id)
        assert [h.sequence for h in history] == [1, 2, 3]
        assert [(h.action, h.to_status, h.actor_id) for h in history] == [
            ("submit", "pending", "buyer-1"),
            ("request_verification", "pending_verification", "admin-1"),
            ("approve", "approved", "farmer-1"),
        ]
        assert history[2].actor_role == "listing_owner"
        assert notifications.names() == [
            "fulfillment_offer.submit",
            "fulfillment_offer.request_verification",
            "fulfillment_offer.approve",
        ]

    def test_transition_is_logged(self, submit_offer, executor, farmer, captured_logs):
        offer = submit_offer([(WHEAT, 3)])
        executor.transition(OFFER, offer.id, "approved", farmer)
        logged = [r for r in captured_logs() if r["message"] == "status_transitioned"]
        assert logged[0]["action"] == "approve"
        assert logged[0]["actor_id"] == "farmer-1"
        assert logged[0]["entity_id"] == str(offer.id)


class TestConcurrentDecision:
    def test_stale_row_version_is_a_conflict(
        self, submit_offer, executor, farmer, recorder, session_factory, monkeypatch, ledger
    ):
        """Another decision commits between our read and our write."""
        offer = submit_offer([(WHEAT, 3)])
        real_record = recorder.record

        def _interleaved(session, **kwargs):
            with session_scope(session_factory) as other:
                other.execute(
                    update(FulfillmentOfferModel)
                    .where(FulfillmentOfferModel.id == offer.id)
                    .values(status="approved", row_version=FulfillmentOfferModel.row_version + 1)
                )
            return real_record(session, **kwargs)

        monkeypatch.setattr(recorder, "record", _interleaved)
        with pytest.raises(ConflictError):
            executor.transition(OFFER, offer.id, "rejected", farmer)
        # The reject never committed, so nothing was released.
        assert _committed(ledger, WHEAT_KEY) == Decimal("3")

    def test_release_failure_after_commit_propagates(
        self, submit_offer, executor, farmer, ledger, session, monkeypatch, captured_logs
    ):
        offer = submit_offer([(WHEAT, 3)])

        def _broken(key, quantity):
            raise OSError("ledger unreachable")

        monkeypatch.setattr(ledger, "release", _broken)
        with pytest.raises(OSError):
            executor.transition(OFFER, offer.id, "rejected", farmer)

        monkeypatch.undo()
        # Status moved first; the quantity is leaked, never double-sold.
        history = TransitionSelector(session).history(OFFER, offer.id)
        assert history[-1].to_status == "rejected"
        assert _committed(ledger, WHEAT_KEY) == Decimal("3")
        assert any(r["message"] == "release_after_transition_failed" for r in captured_logs())


class TestCatalogOrderLifecycle:
    def _order(self, builder, buyer, quantity=4):
        return builder.submit_catalog_order(builder.build_catalog_order("fert-1", quantity), "c-1", buyer)

    def test_accept_then_deliver(self, builder, executor, buyer, operator, ledger):
        order = self._order(builder, buyer)
        executor.transition(CATALOG, order.id, CatalogOrderStatus.ACCEPTED, operator)
        delivered = executor.transition(CATALOG, order.id, CatalogOrderStatus.DELIVERED, operator)
        assert delivered.status is CatalogOrderStatus.DELIVERED
        assert _committed(ledger, LedgerKey.for_product("fert-1")) == Decimal("4")

    def test_reject_releases_stock(self, builder, executor, buyer, admin, ledger):
        order = self._order(builder, buyer)
        executor.transition(CATALOG, order.id, "rejected", admin)
        assert _committed(ledger, LedgerKey.for_product("fert-1")) == Decimal("0")

    def test_buyer_cannot_accept(self, builder, executor, buyer):
        order = self._order(builder, buyer)
        with pytest.raises(PermissionDeniedError):
            executor.transition(CATALOG, order.id, "accepted", buyer)

    def test_operator_cannot_accept_own_order(self, builder, executor, operator, other_operator):
        order = self._order(builder, operator)
        with pytest.raises(PermissionDeniedError):
            executor.transition(CATALOG, order.id, "accepted", operator)
        executor.transition(CATALOG, order.id, "accepted", other_operator)

    def test_operator_cannot_deliver_own_order(self, builder, executor, operator, other_operator, ledger):
        order = self._order(builder, operator)
        executor.transition(CATALOG, order.id, "accepted", other_operator)

        with pytest.raises(PermissionDeniedError):
            executor.transition(CATALOG, order.id, "delivered", operator)

        delivered = executor.transition(CATALOG, order.id, "delivered", other_operator)
        assert delivered.status is CatalogOrderStatus.DELIVERED
        assert _committed(ledger, LedgerKey.for_product("fert-1")) == Decimal("4")

    def test_cannot_deliver_before_accepting(self, builder, executor, buyer, operator):
        order = self._order(builder, buyer)
        with pytest.raises(IllegalTransitionError):
            executor.transition(CATALOG, order.id, "delivered", operator)


class TestBulkRestockLifecycle:
    def test_full_lifecycle(self, submit_bulk, executor, operator, admin, ledger, session):
        order = submit_bulk([("seed-1", 10)])
        for status, actor in [
            (BulkRestockStatus.PENDING, operator),
            (BulkRestockStatus.APPROVED, admin),
            (BulkRestockStatus.RECEIVED, operator),
            (BulkRestockStatus.DELIVERED, operator),
        ]:
            order = executor.transition(BULK, order.id, status, actor)
            assert order.status is status

        history = TransitionSelector(session).history(BULK, order.id)
        assert [h.action for h in history] == ["submit", "send", "approve", "receive", "deliver"]
        assert _committed(ledger, LedgerKey.for_product("seed-1")) == Decimal("10")

    @pytest.mark.parametrize(
        "target",
        ["approved", "received", "delivered", "rejected"],
    )
    def test_no_skipping_from_draft(self, submit_bulk, executor, admin, target):
        order = submit_bulk([("seed-1", 1)])
        with pytest.raises(IllegalTransitionError):
            executor.transition(BULK, order.id, target, admin)

    def test_only_creator_sends(self, submit_bulk, executor, other_operator, admin):
        order = submit_bulk([("seed-1", 1)])
        with pytest.raises(PermissionDeniedError):
            executor.transition(BULK, order.id, "pending", other_operator)
        # Admins are exempt from ownership.
        executor.transition(BULK, order.id, "pending", admin)

    def test_operator_cannot_approve(self, submit_bulk, executor, operator):
        order = submit_bulk([("seed-1", 1)])
        executor.transition(BULK, order.id, "pending", operator)
        with pytest.raises(PermissionDeniedError):
            executor.transition(BULK, order.id, "approved", operator)

    def test_admin_cannot_approve_own_order(self, submit_bulk, executor, admin):
        order = submit_bulk([("seed-1", 1)], actor=admin)
        executor.transition(BULK, order.id, "pending", admin)
        with pytest.raises(PermissionDeniedError):
            executor.transition(BULK, order.id, "approved", admin)

    def test_reject_releases_stock(self, submit_bulk, executor, operator, admin, ledger):
        order = submit_bulk([("seed-1", 10), ("fert-1", 3)])
        executor.transition(BULK, order.id, "pending", operator)
        executor.transition(BULK, order.id, "rejected", admin)
        assert _committed(ledger, LedgerKey.for_product("seed-1")) == Decimal("0")
        assert _committed(ledger, LedgerKey.for_product("fert-1")) == Decimal("0")
