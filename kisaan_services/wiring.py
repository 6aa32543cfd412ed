"""
Service wiring.

``build_core`` assembles the ledger, the reservation coordinator, the
Offer Builder, the lifecycle executor and the bulk restock editor around
one session factory, one clock, one gate and one notification sink, with
the retry policy taken from configuration.  Request handlers hold one
``MarketplaceCore`` per process.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session, sessionmaker

from kisaan_config import KisaanConfig, get_active_config
from kisaan_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from kisaan_kernel.domain.clock import Clock, SystemClock
from kisaan_kernel.domain.gate import TransitionGate
from kisaan_kernel.domain.ports import ListingReader, NotificationSink, ProductReader
from kisaan_kernel.domain.retry import RetryPolicy
from kisaan_kernel.logging_config import configure_logging
from kisaan_kernel.services.ledger_service import LedgerService
from kisaan_kernel.services.transition_recorder import TransitionRecorder
from kisaan_modules import default_gate
from kisaan_services.adapters import LoggingNotificationSink
from kisaan_services.bulk_restock_editor import BulkRestockEditor
from kisaan_services.lifecycle_executor import LifecycleExecutor
from kisaan_services.offer_builder import DEFAULT_CLAIM_STALE_AFTER, OfferBuilder
from kisaan_services.reservations import ReservationCoordinator


@dataclass(frozen=True)
class MarketplaceCore:
    gate: TransitionGate
    ledger: LedgerService
    reservations: ReservationCoordinator
    builder: OfferBuilder
    executor: LifecycleExecutor
    editor: BulkRestockEditor


def build_core(
    session_factory: sessionmaker[Session],
    listings: ListingReader,
    products: ProductReader,
    *,
    retry_policy: RetryPolicy | None = None,
    clock: Clock | None = None,
    notifications: NotificationSink | None = None,
    gate: TransitionGate | None = None,
    claim_stale_after: timedelta = DEFAULT_CLAIM_STALE_AFTER,
) -> MarketplaceCore:
    clock = clock or SystemClock()
    gate = gate or default_gate()
    notifications = notifications if notifications is not None else LoggingNotificationSink()
    recorder = TransitionRecorder()

    ledger = LedgerService(session_factory, clock)
    reservations = ReservationCoordinator(ledger, retry_policy)
    return MarketplaceCore(
        gate=gate,
        ledger=ledger,
        reservations=reservations,
        builder=OfferBuilder(
            session_factory, reservations, listings, products,
            gate=gate, clock=clock, notifications=notifications, recorder=recorder,
            claim_stale_after=claim_stale_after,
        ),
        executor=LifecycleExecutor(
            session_factory, ledger,
            gate=gate, clock=clock, notifications=notifications, recorder=recorder,
        ),
        editor=BulkRestockEditor(
            session_factory, reservations, products,
            gate=gate, clock=clock, notifications=notifications, recorder=recorder,
        ),
    )


def build_core_from_config(
    listings: ListingReader,
    products: ProductReader,
    *,
    config: KisaanConfig | None = None,
    clock: Clock | None = None,
    notifications: NotificationSink | None = None,
) -> MarketplaceCore:
    """Initialize logging and the engine from configuration, create tables, wire."""
    config = config or get_active_config()
    configure_logging(level=config.logging.level_number)
    init_engine_from_url(config.database.url, **config.database.engine_kwargs())
    create_tables()
    return build_core(
        get_session_factory(),
        listings,
        products,
        retry_policy=config.ledger_retry.to_policy(),
        claim_stale_after=config.submissions.claim_stale_after,
        clock=clock,
        notifications=notifications,
    )
