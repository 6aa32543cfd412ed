"""
Tests for bulk restock edit and delete (kisaan_services/bulk_restock_editor.py).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from kisaan_kernel.domain.values import EntityType, LedgerKey, ProductSnapshot
from kisaan_kernel.exceptions import (
    EmptyOfferError,
    InsufficientCapacityError,
    PermissionDeniedError,
    ProductNotFoundError,
    RecordNotFoundError,
)
from kisaan_kernel.selectors.transition_selector import TransitionSelector
from kisaan_modules.bulk_restock.models import BulkLineRequest, BulkRestockStatus
from kisaan_modules.bulk_restock.selectors import BulkRestockSelector

BULK = EntityType.BULK_RESTOCK_ORDER
SEED = LedgerKey.for_product("seed-1")
FERT = LedgerKey.for_product("fert-1")
TOOL = LedgerKey.for_product("tool-1")


def _committed(ledger, key) -> Decimal:
    return ledger.read(key).committed


@pytest.fixture
def order_in(submit_bulk, executor, operator, admin):
    """Submit an order for op-1 and walk it to ``status``."""
    path = {
        "draft": [],
        "pending": [("pending", operator)],
        "approved": [("pending", operator), ("approved", admin)],
        "rejected": [("pending", operator), ("rejected", admin)],
        "received": [("pending", operator), ("approved", admin), ("received", operator)],
        "delivered": [
            ("pending", operator), ("approved", admin), ("received", operator), ("delivered", operator),
        ],
    }

    def _make(status: str, lines=(("seed-1", 10), ("fert-1", 4))):
        order = submit_bulk(list(lines))
        for target, actor in path[status]:
            order = executor.transition(BULK, order.id, target, actor)
        return order

    return _make


class TestEditGating:
    @pytest.mark.parametrize("status", ["draft", "pending"])
    def test_editable_statuses(self, order_in, editor, operator, status):
        order = order_in(status)
        edited = editor.edit_bulk_order(order.id, [("seed-1", 12)], operator)
        assert edited.status.value == status
        assert [(line.product_id, line.quantity) for line in edited.lines] == [("seed-1", Decimal("12"))]

    @pytest.mark.parametrize("status", ["approved", "rejected", "received", "delivered"])
    def test_locked_statuses(self, order_in, editor, operator, admin, ledger, status):
        order = order_in(status)
        before = _committed(ledger, SEED)
        for actor in (operator, admin):
            with pytest.raises(PermissionDeniedError):
                editor.edit_bulk_order(order.id, [("seed-1", 1)], actor)
            with pytest.raises(PermissionDeniedError):
                editor.delete_bulk_order(order.id, actor)
        assert _committed(ledger, SEED) == before

    def test_other_operator_cannot_edit(self, order_in, editor, other_operator):
        order = order_in("draft")
        with pytest.raises(PermissionDeniedError):
            editor.edit_bulk_order(order.id, [("seed-1", 1)], other_operator)

    def test_admin_may_edit(self, order_in, editor, admin):
        order = order_in("pending")
        assert len(editor.edit_bulk_order(order.id, [("tool-1", 1)], admin).lines) == 1

    def test_unknown_order(self, editor, operator):
        with pytest.raises(RecordNotFoundError):
            editor.edit_bulk_order(uuid4(), [("seed-1", 1)], operator)


class TestEditLedger:
    def test_increase_decrease_add_remove(self, order_in, editor, operator, ledger):
        order = order_in("draft")  # seed 10, fert 4
        editor.edit_bulk_order(order.id, [("seed-1", 15), ("tool-1", 2)], operator)

        assert _committed(ledger, SEED) == Decimal("15")
        assert _committed(ledger, FERT) == Decimal("0")
        assert _committed(ledger, TOOL) == Decimal("2")

    def test_increase_that_does_not_fit_changes_nothing(self, order_in, editor, operator, ledger, session):
        order = order_in("draft", lines=(("seed-1", 10), ("tool-1", 4)))
        # tool-1 stock is 5: 4 held, +2 does not fit; seed +5 is rolled back.
        with pytest.raises(InsufficientCapacityError):
            editor.edit_bulk_order(order.id, [("seed-1", 15), ("tool-1", 6)], operator)

        assert _committed(ledger, SEED) == Decimal("10")
        assert _committed(ledger, TOOL) == Decimal("4")
        stored = BulkRestockSelector(session).get(order.id)
        assert {line.product_id: line.quantity for line in stored.lines} == {
            "seed-1": Decimal("10"),
            "tool-1": Decimal("4"),
        }

    def test_duplicates_merged_on_edit(self, order_in, editor, operator, ledger):
        order = order_in("draft")
        edited = editor.edit_bulk_order(
            order.id, [BulkLineRequest("seed-1", 2), ("seed-1", 3)], operator
        )
        assert [(line.product_id, line.quantity) for line in edited.lines] == [("seed-1", Decimal("5"))]
        assert _committed(ledger, SEED) == Decimal("5")

    @pytest.mark.parametrize(
        "lines, error",
        [([], EmptyOfferError), ([("ghost", 1)], ProductNotFoundError)],
    )
    def test_invalid_lines_change_nothing(self, order_in, editor, operator, ledger, lines, error):
        order = order_in("draft")
        with pytest.raises(error):
            editor.edit_bulk_order(order.id, lines, operator)
        assert _committed(ledger, SEED) == Decimal("10")


class TestEditTotals:
    def test_totals_repriced_from_catalog(self, order_in, editor, operator, catalog):
        order = order_in("draft")  # seed 10 @ 8/10, fert 4 @ 20/25
        assert order.total_buying_value == Decimal("160")
        assert order.total_selling_value == Decimal("200")

        catalog.put_product(ProductSnapshot("seed-1", "Wheat seed", "9", "12", "100"))
        edited = editor.edit_bulk_order(order.id, [("seed-1", 10), ("fert-1", 4)], operator)

        assert edited.total_buying_value == Decimal("10") * 9 + Decimal("4") * 20
        assert edited.total_selling_value == Decimal("10") * 12 + Decimal("4") * 25
        seed_line = next(line for line in edited.lines if line.product_id == "seed-1")
        assert seed_line.buying_price == Decimal("9")

    def test_edit_recorded_with_detail(self, order_in, editor, operator, session, notifications):
        order = order_in("pending")
        notifications.clear()
        editor.edit_bulk_order(order.id, [("seed-1", 3)], operator)

        history = TransitionSelector(session).history(BULK, order.id)
        edit = history[-1]
        assert (edit.action, edit.from_status, edit.to_status) == ("edit", "pending", "pending")
        assert edit.detail["lines"] == {"seed-1": "3"}
        assert notifications.names() == ["bulk_restock_order.edit"]


class TestDelete:
    @pytest.mark.parametrize("status", ["draft", "pending"])
    def test_delete_releases_everything(self, order_in, editor, operator, ledger, session, status):
        order = order_in(status)
        editor.delete_bulk_order(order.id, operator)

        assert _committed(ledger, SEED) == Decimal("0")
        assert _committed(ledger, FERT) == Decimal("0")
        with pytest.raises(RecordNotFoundError):
            BulkRestockSelector(session).get(order.id)
        history = TransitionSelector(session).history(BULK, order.id)
        assert history[-1].action == "delete"
        assert history[-1].to_status is None

    def test_other_operator_cannot_delete(self, order_in, editor, other_operator, ledger):
        order = order_in("draft")
        with pytest.raises(PermissionDeniedError):
            editor.delete_bulk_order(order.id, other_operator)
        assert _committed(ledger, SEED) == Decimal("10")

    def test_replay_after_delete(self, builder, editor, operator):
        draft = builder.build_bulk_order([("seed-1", 1)])
        order = builder.submit_bulk_order(draft, "b-1", operator)
        editor.delete_bulk_order(order.id, operator)
        with pytest.raises(RecordNotFoundError):
            builder.submit_bulk_order(draft, "b-1", operator)

    def test_status_of_deleted_order_listed(self, order_in, editor, operator, session):
        kept = order_in("draft")
        gone = order_in("draft")
        editor.delete_bulk_order(gone.id, operator)
        assert [o.id for o in BulkRestockSelector(session).find(created_by="op-1")] == [kept.id]
        assert BulkRestockSelector(session).find(status=BulkRestockStatus.PENDING) == []
