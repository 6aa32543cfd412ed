"""
Hypothesis-based fuzzing of the quantity ledger and the transition gate.

Boundaries fuzzed here:
- Ledger: random reserve/release sequences of fractional quantities against
  a fresh key, compared with a plain Decimal model (committed, version)
- Ledger: over-release always floors at zero and halts the key
- Gate: every (entity, from, to, role) combination is either declared and
  permitted, declared and denied, or illegal; nothing in between
- Quantities: arbitrary actor input is a positive Decimal or a
  validation error, never anything else
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from kisaan_kernel.domain.values import (
    Actor,
    LedgerKey,
    LineItemKey,
    Role,
    parse_quantity,
)
from kisaan_kernel.exceptions import (
    ConsistencyFaultError,
    IllegalTransitionError,
    InsufficientCapacityError,
    InvalidQuantityError,
    NonPositiveQuantityError,
    PermissionDeniedError,
)
from kisaan_modules import ALL_WORKFLOWS, default_gate

DB_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

quantities = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("6"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

ledger_ops = st.lists(
    st.tuples(st.sampled_from(["reserve", "release"]), quantities),
    max_size=15,
)


def _fresh_key() -> LedgerKey:
    # The ledger fixture outlives a single example; every example gets its own key.
    return LedgerKey.for_listing_line(f"L-{uuid4()}", LineItemKey("wheat", "organic"))


class TestLedgerModel:
    @given(
        capacity=st.decimals(min_value=0, max_value=20, places=1, allow_nan=False, allow_infinity=False),
        ops=ledger_ops,
    )
    @DB_SETTINGS
    def test_matches_decimal_model(self, ledger, capacity, ops):
        key = _fresh_key()
        ledger.open_entry(key, capacity)
        committed, version = Decimal("0"), 0

        for op, quantity in ops:
            if op == "reserve":
                expected = ledger.read(key).version
                if committed + quantity <= capacity:
                    result = ledger.reserve(key, quantity, expected)
                    assert result.ok and result.new_version == expected + 1
                    committed += quantity
                    version += 1
                else:
                    with pytest.raises(InsufficientCapacityError):
                        ledger.reserve(key, quantity, expected)
            elif committed:
                quantity = min(quantity, committed)
                ledger.release(key, quantity)
                committed -= quantity
                version += 1

            snapshot = ledger.read(key)
            assert snapshot.committed == committed
            assert snapshot.version == version
            assert Decimal("0") <= snapshot.committed <= snapshot.capacity
            assert not snapshot.halted

    @given(
        held=st.integers(min_value=0, max_value=10),
        excess=st.integers(min_value=1, max_value=10),
    )
    @DB_SETTINGS
    def test_over_release_floors_and_halts(self, ledger, held, excess):
        key = _fresh_key()
        ledger.open_entry(key, Decimal("10"))
        if held:
            ledger.reserve(key, Decimal(held), 0)

        snapshot = ledger.release(key, Decimal(held + excess))

        assert snapshot.committed == Decimal("0")
        assert snapshot.halted
        with pytest.raises(ConsistencyFaultError):
            ledger.reserve(key, Decimal("1"), snapshot.version)


def _gate_cases():
    cases = []
    for workflow in ALL_WORKFLOWS:
        for source in workflow.states:
            for target in workflow.states:
                cases.append((workflow, source, target))
    return cases


class TestGateClosure:
    @given(case=st.sampled_from(_gate_cases()), role=st.sampled_from(list(Role)))
    @settings(max_examples=300)
    def test_every_request_is_permitted_denied_or_illegal(self, case, role):
        workflow, source, target = case
        actor = Actor("someone", role)
        declared = next(
            (t for t in workflow.transitions if (t.from_state, t.to_state) == (source, target)),
            None,
        )
        gate = default_gate()

        if declared is None:
            with pytest.raises(IllegalTransitionError):
                gate.check_transition(workflow.entity_type, source, target, actor)
        elif role in declared.allowed_roles:
            assert gate.check_transition(workflow.entity_type, source, target, actor) is declared
        else:
            with pytest.raises(PermissionDeniedError):
                gate.check_transition(workflow.entity_type, source, target, actor)

    @given(workflow=st.sampled_from(list(ALL_WORKFLOWS)))
    def test_terminal_states_are_dead_ends(self, workflow):
        gate = default_gate()
        for state in workflow.terminal_states:
            assert gate.next_statuses(workflow.entity_type, state) == frozenset()


class TestQuantityParsing:
    @given(value=st.integers(min_value=1, max_value=10**9))
    def test_positive_integers_accepted(self, value):
        assert parse_quantity(value, "line") == Decimal(value)

    @given(value=st.integers(max_value=0))
    def test_non_positive_integers_rejected(self, value):
        with pytest.raises(NonPositiveQuantityError):
            parse_quantity(value, "line")

    @given(value=st.one_of(st.text(max_size=30), st.floats(), st.none(), st.booleans()))
    @settings(max_examples=300)
    def test_arbitrary_input_is_positive_or_rejected(self, value):
        try:
            quantity = parse_quantity(value, "line")
        except InvalidQuantityError:
            return
        assert isinstance(quantity, Decimal)
        assert quantity.is_finite() and quantity > 0
