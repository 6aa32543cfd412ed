"""
Pytest fixtures for the kisaan core test suite.

Provides:
- A fresh SQLite file database per test (WAL, busy timeout), so threads in
  the concurrency tests get real separate connections
- A StaticCatalog with listing L1 (wheat/organic 10, rice/basmati 6) and
  three catalog products
- Wired services: ledger, reservation coordinator, Offer Builder,
  lifecycle executor, bulk restock editor
- Structured log capture
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from kisaan_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from kisaan_kernel.domain.clock import DeterministicClock
from kisaan_kernel.domain.retry import RetryPolicy
from kisaan_kernel.domain.values import (
    Actor,
    LineItemKey,
    Listing,
    ListingKind,
    ListingLineItem,
    ListingStatus,
    ProductSnapshot,
    Role,
)
from kisaan_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from kisaan_kernel.services.ledger_service import LedgerService
from kisaan_kernel.services.transition_recorder import TransitionRecorder
from kisaan_modules import default_gate
from kisaan_services.adapters import RecordingNotificationSink, StaticCatalog
from kisaan_services.bulk_restock_editor import BulkRestockEditor
from kisaan_services.lifecycle_executor import LifecycleExecutor
from kisaan_services.offer_builder import OfferBuilder
from kisaan_services.reservations import ReservationCoordinator

WHEAT = LineItemKey("wheat", "organic")
RICE = LineItemKey("rice", "basmati")
LISTING_ID = "L1"
FARMER_ID = "farmer-1"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture kisaan_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.release(key, Decimal("1"))
            logs = captured_logs()
            assert any(r["message"] == "ledger_underflow" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("kisaan_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory(tmp_path):
    """Engine over a per-test SQLite file with every table created."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'kisaan.db'}", sqlite_busy_timeout=30.0)
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def session(session_factory):
    """Read session for selectors."""
    s = session_factory()
    yield s
    s.close()


# =============================================================================
# Catalog and actors
# =============================================================================


def make_listing(
    listing_id: str = LISTING_ID,
    owner_id: str = FARMER_ID,
    status: ListingStatus = ListingStatus.ACTIVE,
    wheat: str = "10",
    rice: str = "6",
) -> Listing:
    return Listing(
        listing_id=listing_id,
        owner_id=owner_id,
        kind=ListingKind.SUPPLY,
        status=status,
        line_items=(
            ListingLineItem(WHEAT, Decimal(wheat), Decimal("20")),
            ListingLineItem(RICE, Decimal(rice), Decimal("50")),
        ),
    )


@pytest.fixture
def catalog():
    return StaticCatalog(
        listings=[
            make_listing(),
            make_listing("L-closed", status=ListingStatus.INACTIVE),
        ],
        products=[
            ProductSnapshot("seed-1", "Wheat seed", Decimal("8"), Decimal("10"), Decimal("100")),
            ProductSnapshot("fert-1", "Urea", Decimal("20"), Decimal("25"), Decimal("40")),
            ProductSnapshot("tool-1", "Sickle", Decimal("100"), Decimal("150"), Decimal("5")),
        ],
    )


@pytest.fixture
def farmer():
    return Actor(FARMER_ID, Role.LISTING_OWNER)


@pytest.fixture
def buyer():
    return Actor("buyer-1", Role.REQUESTER)


@pytest.fixture
def other_buyer():
    return Actor("buyer-2", Role.REQUESTER)


@pytest.fixture
def operator():
    return Actor("op-1", Role.OPERATOR)


@pytest.fixture
def other_operator():
    return Actor("op-2", Role.OPERATOR)


@pytest.fixture
def admin():
    return Actor("admin-1", Role.ADMIN)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def gate():
    return default_gate()


@pytest.fixture
def fast_retry():
    """Generous attempts, no sleeping: threads in tests converge quickly."""
    return RetryPolicy(max_attempts=50, base_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def ledger(session_factory, deterministic_clock):
    return LedgerService(session_factory, deterministic_clock)


@pytest.fixture
def coordinator(ledger, fast_retry):
    return ReservationCoordinator(ledger, fast_retry)


@pytest.fixture
def recorder():
    return TransitionRecorder()


@pytest.fixture
def builder(session_factory, coordinator, catalog, gate, deterministic_clock, notifications, recorder):
    return OfferBuilder(
        session_factory,
        coordinator,
        catalog,
        catalog,
        gate=gate,
        clock=deterministic_clock,
        notifications=notifications,
        recorder=recorder,
    )


@pytest.fixture
def executor(session_factory, ledger, gate, deterministic_clock, notifications, recorder):
    return LifecycleExecutor(
        session_factory,
        ledger,
        gate=gate,
        clock=deterministic_clock,
        notifications=notifications,
        recorder=recorder,
    )


@pytest.fixture
def editor(session_factory, coordinator, catalog, gate, deterministic_clock, notifications, recorder):
    return BulkRestockEditor(
        session_factory,
        coordinator,
        catalog,
        gate=gate,
        clock=deterministic_clock,
        notifications=notifications,
        recorder=recorder,
    )


@pytest.fixture
def submit_offer(builder, buyer):
    """Build and submit an offer on L1; returns the FulfillmentOffer."""
    counter = {"n": 0}

    def _submit(lines, actor=None, listing_id=LISTING_ID, key=None):
        counter["n"] += 1
        draft = builder.build_offer(listing_id, lines)
        return builder.submit_offer(draft, key or f"offer-{counter['n']}", actor or buyer)

    return _submit


@pytest.fixture
def submit_bulk(builder, operator):
    """Build and submit a bulk restock order; returns the BulkRestockOrder."""
    counter = {"n": 0}

    def _submit(lines, actor=None, key=None):
        counter["n"] += 1
        draft = builder.build_bulk_order(lines)
        return builder.submit_bulk_order(draft, key or f"bulk-{counter['n']}", actor or operator)

    return _submit
