"""
OfferBuilder -- build, pre-validate and submit offers and orders.

Responsibility:
    Turns an actor's candidate lines into a validated draft (advisory
    capacity pre-check against the ledger), then submits the draft:
    idempotency claim, all-or-nothing reservation, record creation in the
    workflow's entry state.

Architecture position:
    Services -- orchestration.  Reads listings and products through the
    ListingReader/ProductReader contracts, writes capacity only through the
    ReservationCoordinator, and records through module ORM models.

Invariants enforced:
    - A draft never reaches the ledger with an empty line set, a duplicate
      key, an unknown key or a non-positive quantity.
    - Submission is all-or-nothing: either every line is reserved and the
      record exists, or no reservation made by the attempt remains.
    - One idempotency key yields at most one record and one set of
      reservations, however many times it is replayed.
    - Every ledger change an attempt makes is recorded as a SubmissionHold
      of its claim, in the same transaction, until the record is written.

Failure modes:
    - ValidationError subclasses from build_* and from key reuse.
    - InsufficientCapacityError, ConflictError (retries exhausted),
      ConsistencyFaultError: propagated unchanged after compensation.
    - SubmissionInProgressError: the same key is being submitted right now,
      or an earlier attempt failed and could not yet be cleaned up.  A
      replay after ``claim_stale_after`` releases that attempt's holds and
      starts over.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from kisaan_kernel.db.engine import session_scope
from kisaan_kernel.domain.clock import Clock, SystemClock
from kisaan_kernel.domain.gate import TransitionGate
from kisaan_kernel.domain.ports import (
    ListingReader,
    NotificationSink,
    ProductReader,
    StatusChangeEvent,
)
from kisaan_kernel.domain.values import (
    Actor,
    EntityType,
    LedgerKey,
    LineItemKey,
    parse_quantity,
)
from kisaan_kernel.exceptions import (
    DuplicateLineItemError,
    EmptyOfferError,
    IdempotencyKeyReuseError,
    KisaanKernelError,
    LedgerEntryNotFoundError,
    ListingInactiveError,
    PermissionDeniedError,
    QuantityExceedsRemainingError,
    RecordNotFoundError,
    SubmissionInProgressError,
    UnknownLineItemError,
)
from kisaan_kernel.logging_config import LogContext, get_logger
from kisaan_kernel.models.submission import ClaimState, SubmissionClaim, SubmissionHold
from kisaan_kernel.services.transition_recorder import TransitionRecorder
from kisaan_kernel.utils.hashing import hash_payload
from kisaan_modules import default_gate, record_model
from kisaan_modules.bulk_restock.models import BulkLineRequest, BulkRestockLine
from kisaan_modules.bulk_restock.orm import BulkRestockLineModel, BulkRestockOrderModel
from kisaan_modules.bulk_restock.pricing import compute_totals, merge_lines, price_lines
from kisaan_modules.catalog_order.orm import CatalogOrderModel
from kisaan_modules.fulfillment.models import OfferLine
from kisaan_modules.fulfillment.orm import FulfillmentOfferLineModel, FulfillmentOfferModel
from kisaan_services.adapters import emit_safely
from kisaan_services.reservations import ReservationCoordinator, ReservationRequest

logger = get_logger("services.offer_builder")

DEFAULT_CLAIM_STALE_AFTER = timedelta(seconds=60)


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OfferDraft:
    """A validated fulfillment offer, not yet submitted."""

    listing_id: str
    listing_owner_id: str
    lines: tuple[OfferLine, ...]
    requests: tuple[ReservationRequest, ...]

    entity_type = EntityType.FULFILLMENT_OFFER

    def fingerprint_payload(self) -> dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "lines": sorted(
                [line.line_item_key.name, line.line_item_key.type, line.quantity]
                for line in self.lines
            ),
        }


@dataclass(frozen=True)
class CatalogOrderDraft:
    product_id: str
    quantity: Decimal
    unit_price: Decimal
    requests: tuple[ReservationRequest, ...]

    entity_type = EntityType.CATALOG_ORDER

    def fingerprint_payload(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "quantity": self.quantity}


@dataclass(frozen=True)
class BulkOrderDraft:
    lines: tuple[BulkRestockLine, ...]
    total_buying_value: Decimal
    total_selling_value: Decimal
    requests: tuple[ReservationRequest, ...]

    entity_type = EntityType.BULK_RESTOCK_ORDER

    def fingerprint_payload(self) -> dict[str, Any]:
        return {
            "lines": sorted([line.product_id, line.quantity] for line in self.lines),
        }


def _line_key(value: LineItemKey | tuple[str, str]) -> LineItemKey:
    if isinstance(value, LineItemKey):
        return value
    name, type_ = value
    return LineItemKey(name, type_)


def _as_utc(stamp: datetime) -> datetime:
    # SQLite hands DateTime(timezone=True) back naive.
    return stamp if stamp.tzinfo is not None else stamp.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class OfferBuilder:
    """
    Entry point for creating fulfillment offers, catalog orders and bulk
    restock orders.

    Contract:
        ``build_*`` reads the catalog and the ledger and returns a draft or
        raises a ValidationError; nothing is written.  ``submit_*`` takes a
        draft, an idempotency key and the submitting actor and returns the
        created record DTO.

    Non-goals:
        - The build-time remaining check is advisory.  Only the ledger's
          conditional update decides whether a quantity fits.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        reservations: ReservationCoordinator,
        listings: ListingReader,
        products: ProductReader,
        *,
        gate: TransitionGate | None = None,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        recorder: TransitionRecorder | None = None,
        claim_stale_after: timedelta = DEFAULT_CLAIM_STALE_AFTER,
    ):
        self._session_factory = session_factory
        self._reservations = reservations
        self._claim_stale_after = claim_stale_after
        self._ledger = reservations.ledger
        self._listings = listings
        self._products = products
        self._gate = gate or default_gate()
        self._clock = clock or SystemClock()
        self._notifications = notifications
        self._recorder = recorder or TransitionRecorder()

    @property
    def claim_stale_after(self) -> timedelta:
        return self._claim_stale_after

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _remaining(self, key: LedgerKey, capacity: Decimal) -> Decimal:
        try:
            return self._ledger.remaining(key)
        except LedgerEntryNotFoundError:
            # Nothing reserved against this key yet.
            return capacity

    def build_offer(
        self,
        listing_id: str,
        lines: Iterable[tuple[LineItemKey | tuple[str, str], Any]],
    ) -> OfferDraft:
        """
        Validate candidate ``(line_item_key, quantity)`` pairs against a listing.

        Raises:
            ListingNotFoundError, ListingInactiveError, EmptyOfferError,
            DuplicateLineItemError, UnknownLineItemError,
            InvalidQuantityError, QuantityExceedsRemainingError,
            ConsistencyFaultError (a line's ledger key is halted).
        """
        listing = self._listings.get_listing(listing_id)
        if not listing.is_active:
            raise ListingInactiveError(listing_id)

        offer_lines: list[OfferLine] = []
        requests: list[ReservationRequest] = []
        seen: set[LineItemKey] = set()
        for raw_key, raw_quantity in lines:
            key = _line_key(raw_key)
            if key in seen:
                raise DuplicateLineItemError(str(key))
            seen.add(key)
            item = listing.line_item(key)
            if item is None:
                raise UnknownLineItemError(listing_id, str(key))
            quantity = parse_quantity(raw_quantity, str(key))
            ledger_key = LedgerKey.for_listing_line(listing_id, key)
            remaining = self._remaining(ledger_key, item.quantity_total)
            if quantity > remaining:
                raise QuantityExceedsRemainingError(str(key), quantity, remaining)
            offer_lines.append(OfferLine(key, quantity, item.unit_price))
            requests.append(ReservationRequest(ledger_key, quantity, item.quantity_total))

        if not offer_lines:
            raise EmptyOfferError(EntityType.FULFILLMENT_OFFER.value)

        return OfferDraft(
            listing_id=listing_id,
            listing_owner_id=listing.owner_id,
            lines=tuple(offer_lines),
            requests=tuple(requests),
        )

    def build_catalog_order(self, product_id: str, quantity: Any) -> CatalogOrderDraft:
        """
        Raises:
            ProductNotFoundError, InvalidQuantityError,
            QuantityExceedsRemainingError.
        """
        product = self._products.get_product(product_id)
        qty = parse_quantity(quantity, f"product {product_id}")
        key = LedgerKey.for_product(product_id)
        remaining = self._remaining(key, product.stock)
        if qty > remaining:
            raise QuantityExceedsRemainingError(str(key), qty, remaining)
        return CatalogOrderDraft(
            product_id=product_id,
            quantity=qty,
            unit_price=product.price,
            requests=(ReservationRequest(key, qty, product.stock),),
        )

    def build_bulk_order(
        self, lines: Iterable[BulkLineRequest | tuple[str, Any]]
    ) -> BulkOrderDraft:
        """
        Merge duplicate products, price every line from the catalog and
        pre-check stock.

        Raises:
            EmptyOfferError, InvalidQuantityError, ProductNotFoundError,
            QuantityExceedsRemainingError.
        """
        priced = price_lines(merge_lines(lines), self._products)
        requests = []
        for line in priced:
            stock = self._products.get_product(line.product_id).stock
            key = LedgerKey.for_product(line.product_id)
            remaining = self._remaining(key, stock)
            if line.quantity > remaining:
                raise QuantityExceedsRemainingError(str(key), line.quantity, remaining)
            requests.append(ReservationRequest(key, line.quantity, stock))
        buying, selling = compute_totals(priced)
        return BulkOrderDraft(
            lines=priced,
            total_buying_value=buying,
            total_selling_value=selling,
            requests=tuple(requests),
        )

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def submit_offer(self, draft: OfferDraft, idempotency_key: str, actor: Actor):
        """Submit a fulfillment offer.  Returns a FulfillmentOffer."""
        if actor.actor_id == draft.listing_owner_id:
            raise PermissionDeniedError(
                EntityType.FULFILLMENT_OFFER.value, "submit", actor.actor_id,
                "an actor may not make an offer on their own listing",
            )
        return self._submit(draft, idempotency_key, actor, self._new_offer)

    def submit_catalog_order(self, draft: CatalogOrderDraft, idempotency_key: str, actor: Actor):
        """Submit a catalog order.  Returns a CatalogOrder."""
        return self._submit(draft, idempotency_key, actor, self._new_catalog_order)

    def submit_bulk_order(self, draft: BulkOrderDraft, idempotency_key: str, actor: Actor):
        """Submit a bulk restock order in draft status.  Returns a BulkRestockOrder."""
        return self._submit(draft, idempotency_key, actor, self._new_bulk_order)

    def _submit(
        self,
        draft: OfferDraft | CatalogOrderDraft | BulkOrderDraft,
        idempotency_key: str,
        actor: Actor,
        factory: Callable[[Any, str, Actor, str], Any],
    ):
        if not idempotency_key or not idempotency_key.strip():
            raise ValueError("idempotency_key is required")
        entity_type = draft.entity_type
        fingerprint = hash_payload(
            {
                "entity_type": entity_type.value,
                "actor_id": actor.actor_id,
                **draft.fingerprint_payload(),
            }
        )

        with LogContext.bind(actor_id=actor.actor_id, idempotency_key=idempotency_key):
            claim_id, replay_id = self._claim(idempotency_key, entity_type, fingerprint, actor)
            if replay_id is not None:
                logger.info(
                    "submission_replayed",
                    extra={"entity_type": entity_type.value, "record_id": replay_id},
                )
                return self._load(entity_type, replay_id)

            try:
                self._reservations.reserve_all(draft.requests, hold=claim_id)
            except KisaanKernelError:
                self._abandon(claim_id)
                raise
            except Exception:
                # Outcome of the last UPDATE unknown; its hold row says.
                logger.error(
                    "submission_outcome_unknown",
                    extra={"entity_type": entity_type.value, "claim_id": claim_id},
                    exc_info=True,
                )
                self._abandon(claim_id)
                raise

            initial = self._gate.initial_state(entity_type)
            try:
                record = self._persist(
                    draft, idempotency_key, claim_id, actor, initial, entity_type, factory
                )
            except Exception:
                self._abandon(claim_id)
                raise

            logger.info(
                "submission_completed",
                extra={
                    "entity_type": entity_type.value,
                    "record_id": record.id,
                    "status": initial,
                    "line_count": len(draft.requests),
                },
            )
            emit_safely(
                self._notifications,
                StatusChangeEvent(
                    entity_type=entity_type,
                    entity_id=record.id,
                    action="submit",
                    from_status=None,
                    to_status=initial,
                    actor_id=actor.actor_id,
                    occurred_at=record.created_at,
                ),
            )
            return record

    def _persist(self, draft, idempotency_key, claim_id, actor, initial, entity_type, factory):
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            # Raises NoResultFound if a replay recovered this claim meanwhile.
            claim = session.execute(
                select(SubmissionClaim).where(
                    SubmissionClaim.id == claim_id,
                    SubmissionClaim.state == ClaimState.IN_PROGRESS.value,
                )
            ).scalar_one()
            model = factory(draft, idempotency_key, actor, initial)
            model.created_by = actor.actor_id
            model.created_at = now
            model.updated_at = now
            session.add(model)
            session.flush()
            self._recorder.record(
                session,
                entity_type=entity_type,
                entity_id=model.id,
                action="submit",
                from_status=None,
                to_status=initial,
                actor=actor,
                occurred_at=now,
            )
            claim.state = ClaimState.COMPLETED.value
            claim.entity_id = model.id
            claim.updated_at = now
            # The record owns the quantity from here on.
            session.execute(delete(SubmissionHold).where(SubmissionHold.claim_id == claim_id))
            return model.to_dto()

    # ------------------------------------------------------------------
    # Record factories
    # ------------------------------------------------------------------

    @staticmethod
    def _new_offer(draft: OfferDraft, idempotency_key: str, actor: Actor, status: str):
        model = FulfillmentOfferModel(
            listing_id=draft.listing_id,
            listing_owner_id=draft.listing_owner_id,
            status=status,
            idempotency_key=idempotency_key,
        )
        model.lines = [
            FulfillmentOfferLineModel(
                line_number=number,
                item_name=line.line_item_key.name,
                item_type=line.line_item_key.type,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for number, line in enumerate(draft.lines, start=1)
        ]
        return model

    @staticmethod
    def _new_catalog_order(draft: CatalogOrderDraft, idempotency_key: str, actor: Actor, status: str):
        return CatalogOrderModel(
            product_id=draft.product_id,
            quantity=draft.quantity,
            unit_price=draft.unit_price,
            status=status,
            idempotency_key=idempotency_key,
        )

    @staticmethod
    def _new_bulk_order(draft: BulkOrderDraft, idempotency_key: str, actor: Actor, status: str):
        model = BulkRestockOrderModel(
            status=status,
            total_buying_value=draft.total_buying_value,
            total_selling_value=draft.total_selling_value,
            idempotency_key=idempotency_key,
        )
        model.lines = [
            BulkRestockLineModel.from_dto(line, number)
            for number, line in enumerate(draft.lines, start=1)
        ]
        return model

    # ------------------------------------------------------------------
    # Idempotency claims
    # ------------------------------------------------------------------

    def _claim(
        self,
        idempotency_key: str,
        entity_type: EntityType,
        fingerprint: str,
        actor: Actor,
    ) -> tuple[UUID | None, UUID | None]:
        """
        Take the claim for ``idempotency_key``.

        Returns ``(claim_id, None)`` when this call now owns the key, or
        ``(None, record_id)`` for the record a completed earlier submission
        created.  An in-progress claim older than ``claim_stale_after`` is
        recovered first: whatever it still holds is released and the claim
        is deleted.
        """
        for _ in range(3):
            with session_scope(self._session_factory) as session:
                existing = session.execute(
                    select(SubmissionClaim).where(
                        SubmissionClaim.idempotency_key == idempotency_key
                    )
                ).scalar_one_or_none()
                if existing is not None:
                    if (
                        existing.fingerprint != fingerprint
                        or existing.entity_type != entity_type.value
                    ):
                        raise IdempotencyKeyReuseError(idempotency_key)
                    if existing.state == ClaimState.COMPLETED.value:
                        return None, existing.entity_id
                    age = self._clock.now() - _as_utc(existing.updated_at)
                    if age < self._claim_stale_after:
                        raise SubmissionInProgressError(idempotency_key)
                    stale_id = existing.id
                else:
                    stale_id = None

            if stale_id is not None:
                logger.warning("submission_claim_stale", extra={"claim_id": stale_id})
                self._recover(stale_id)
                continue

            now = self._clock.now()
            claim = SubmissionClaim(
                idempotency_key=idempotency_key,
                entity_type=entity_type.value,
                fingerprint=fingerprint,
                state=ClaimState.IN_PROGRESS.value,
                created_by=actor.actor_id,
                created_at=now,
                updated_at=now,
            )
            try:
                with session_scope(self._session_factory) as session:
                    session.add(claim)
                    session.flush()
                    claim_id = claim.id
                return claim_id, None
            except IntegrityError:
                # Lost the insert race; inspect the winner's claim.
                logger.debug("submission_claim_race")
        raise SubmissionInProgressError(idempotency_key)

    def _recover(self, claim_id: UUID) -> None:
        """Release everything ``claim_id`` still holds, then delete the claim."""
        released = self._reservations.release_held(claim_id)
        with session_scope(self._session_factory) as session:
            session.execute(
                delete(SubmissionClaim).where(
                    SubmissionClaim.id == claim_id,
                    SubmissionClaim.state == ClaimState.IN_PROGRESS.value,
                )
            )
        logger.info(
            "submission_claim_released",
            extra={"claim_id": claim_id, "holds_released": released},
        )

    def _abandon(self, claim_id: UUID) -> None:
        """
        ``_recover`` after a failed attempt.  If the database is still
        failing, the claim and its holds stay for a later replay to recover
        once the claim is stale; the caller re-raises the original error.
        """
        try:
            self._recover(claim_id)
        except Exception:
            logger.error(
                "submission_recovery_deferred",
                extra={"claim_id": claim_id},
                exc_info=True,
            )

    def _load(self, entity_type: EntityType, record_id: UUID):
        with session_scope(self._session_factory) as session:
            model = session.get(record_model(entity_type), record_id)
            if model is None:
                # Completed claim whose bulk order was deleted afterwards.
                raise RecordNotFoundError(entity_type.value, str(record_id))
            return model.to_dto()
