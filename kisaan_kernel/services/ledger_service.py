"""
LedgerService -- the quantity ledger.  The only shared mutable resource.

Responsibility:
    Tracks, per ledger key, how much of a listing line item (or of a catalog
    product's stock) is already spoken for by offers and orders that are not
    in a releasing terminal state.  Every capacity decision on the
    authoritative path is made here, inside one SQL statement.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the Offer Builder (reserve/release on submission and
    rollback), the lifecycle executor (release on reject) and the bulk
    restock editor (reserve/release on line edits and deletion).

Invariants enforced:
    L1 -- 0 <= committed <= capacity for every key, under every
          interleaving.  reserve is a single conditional UPDATE:
              UPDATE ledger_entries
                 SET committed = committed + :q, version = version + 1
               WHERE <key> AND version = :expected
                 AND committed + :q <= capacity AND NOT halted
          so the check and the write cannot be separated by another writer.
    L2 -- version is incremented by exactly one on every successful
          mutation; it is the optimistic-concurrency token callers pass
          back as expected_version.
    L4 -- release never drives committed negative.  An underflow floors at
          zero, halts the key and is logged at CRITICAL.
    Holds -- a reserve or release made on behalf of a submission claim
          writes or deletes that claim's SubmissionHold row in the same
          transaction as the counter change.

Failure modes:
    - ConflictError: expected_version is stale.  Caller re-reads and retries.
    - InsufficientCapacityError: the request does not fit.  Never retried.
    - ConsistencyFaultError: the key is halted, or the stored row was found
      violating L1.  Fatal for that key until an admin clears it.
    - LedgerEntryNotFoundError: no entry has been opened for the key.

Transaction discipline:
    Each public method runs in its own short transaction obtained from the
    session factory.  No ledger transaction is ever held open across a
    catalog read, a record write or a notification; on PostgreSQL the row
    lock lives exactly as long as the single UPDATE (release: the two
    conditional UPDATEs and the hold delete).
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from kisaan_kernel.db.engine import session_scope
from kisaan_kernel.domain.clock import Clock, SystemClock
from kisaan_kernel.domain.values import (
    QUANTITY_PLACES,
    Actor,
    LedgerKey,
    LedgerScope,
    LedgerSnapshot,
    ReservationResult,
    Role,
    parse_quantity,
)
from kisaan_kernel.exceptions import (
    ConflictError,
    ConsistencyFaultError,
    InsufficientCapacityError,
    LedgerEntryNotFoundError,
    PermissionDeniedError,
)
from kisaan_kernel.logging_config import get_logger
from kisaan_kernel.models.ledger import LedgerEntry
from kisaan_kernel.models.submission import SubmissionHold

logger = get_logger("services.ledger")


class _RowMoved(Exception):
    """Neither release statement matched: a concurrent reserve moved the row."""


def _checked_capacity(key: LedgerKey, capacity) -> Decimal:
    capacity = capacity if isinstance(capacity, Decimal) else Decimal(str(capacity))
    if not capacity.is_finite() or capacity < 0:
        raise ValueError(f"capacity for {key} must be a finite value >= 0")
    if capacity.as_tuple().exponent < -QUANTITY_PLACES:
        raise ValueError(f"capacity for {key} has more than {QUANTITY_PLACES} decimal places")
    return capacity


class LedgerService:
    """
    Reserve, release and read committed quantity per ledger key.

    Contract:
        Takes a session factory, not a session: each call is its own unit of
        work so that concurrent request handlers contend only on the single
        UPDATE statement.

    Guarantees:
        - L1 holds after every call, for every key.
        - reserve either applies the whole quantity or nothing.
        - A halted key accepts release but refuses reserve.

    Non-goals:
        - Does NOT know about offers or orders.  Callers own the mapping
          from records to keys and the all-or-nothing rollback.
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _match(key: LedgerKey):
        return and_(
            LedgerEntry.scope == key.scope.value,
            LedgerEntry.resource_id == key.resource_id,
            LedgerEntry.item == key.item,
            LedgerEntry.variant == key.variant,
        )

    @staticmethod
    def _match_hold(claim_id: UUID, key: LedgerKey):
        return and_(
            SubmissionHold.claim_id == claim_id,
            SubmissionHold.scope == key.scope.value,
            SubmissionHold.resource_id == key.resource_id,
            SubmissionHold.item == key.item,
            SubmissionHold.variant == key.variant,
        )

    @staticmethod
    def _snapshot(key: LedgerKey, entry: LedgerEntry) -> LedgerSnapshot:
        return LedgerSnapshot(
            key=key,
            capacity=entry.capacity,
            committed=entry.committed,
            version=entry.version,
            halted=entry.halted,
            halted_reason=entry.halted_reason,
        )

    def _find(self, key: LedgerKey) -> LedgerSnapshot | None:
        with session_scope(self._session_factory) as session:
            entry = session.execute(
                select(LedgerEntry).where(self._match(key))
            ).scalar_one_or_none()
            return None if entry is None else self._snapshot(key, entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, key: LedgerKey) -> LedgerSnapshot:
        """
        Current committed/capacity/version for ``key``.

        Raises:
            LedgerEntryNotFoundError: no entry opened for the key.
        """
        snapshot = self._find(key)
        if snapshot is None:
            raise LedgerEntryNotFoundError(str(key))
        return snapshot

    def remaining(self, key: LedgerKey) -> Decimal:
        """
        capacity - committed.  Advisory: the authoritative check is reserve.

        Raises:
            ConsistencyFaultError: the key is halted, or the stored row
                violates 0 <= committed <= capacity (the key is halted first).
        """
        snapshot = self.read(key)
        self._verify(snapshot)
        return snapshot.remaining

    def _verify(self, snapshot: LedgerSnapshot) -> None:
        if snapshot.halted:
            raise ConsistencyFaultError(
                str(snapshot.key), snapshot.halted_reason or "ledger key is halted"
            )
        if not snapshot.is_consistent:
            reason = (
                f"committed {snapshot.committed} outside [0, {snapshot.capacity}]"
            )
            self._halt(snapshot.key, reason)
            raise ConsistencyFaultError(str(snapshot.key), reason)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def open_entry(self, key: LedgerKey, capacity: Decimal) -> LedgerSnapshot:
        """
        Create the entry for ``key`` if it does not exist yet.

        capacity is the listing line's quantity_total (or the product's
        stock) at the moment of the first reservation against it.  An
        existing entry is returned unchanged: the first writer wins, and
        concurrent openers converge on the same row via the unique key.
        """
        existing = self._find(key)
        if existing is not None:
            return existing

        capacity = _checked_capacity(key, capacity)

        now = self._clock.now()
        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    LedgerEntry(
                        scope=key.scope.value,
                        resource_id=key.resource_id,
                        item=key.item,
                        variant=key.variant,
                        capacity=capacity,
                        committed=Decimal("0"),
                        version=0,
                        halted=False,
                        opened_at=now,
                    )
                )
        except IntegrityError:
            logger.debug("ledger_open_race", extra={"ledger_key": str(key)})
        else:
            logger.info(
                "ledger_entry_opened",
                extra={"ledger_key": str(key), "capacity": capacity},
            )
        return self.read(key)

    def reserve(
        self,
        key: LedgerKey,
        quantity: Decimal,
        expected_version: int,
        *,
        hold: UUID | None = None,
    ) -> ReservationResult:
        """
        Atomically add ``quantity`` to committed if it fits.

        Preconditions:
            - quantity > 0.
            - expected_version was obtained from a read of this key.

        Postconditions:
            - On success committed has grown by exactly quantity and
              version == expected_version + 1.
            - On any failure the entry is unchanged.
            - With ``hold``, a SubmissionHold row for (hold, key) is written
              in the same transaction as the UPDATE.

        Raises:
            ConflictError: stored version != expected_version.
            InsufficientCapacityError: committed + quantity > capacity.
            ConsistencyFaultError: the key is halted.
            LedgerEntryNotFoundError: no entry for the key.
        """
        quantity = parse_quantity(quantity, str(key))

        # INVARIANT: L1 -- check and write in one statement.
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(LedgerEntry)
                .where(
                    self._match(key),
                    LedgerEntry.version == expected_version,
                    LedgerEntry.halted.is_(False),
                    LedgerEntry.committed + quantity <= LedgerEntry.capacity,
                )
                .values(
                    committed=LedgerEntry.committed + quantity,
                    version=LedgerEntry.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount == 1
            if applied and hold is not None:
                session.add(
                    SubmissionHold(
                        claim_id=hold,
                        scope=key.scope.value,
                        resource_id=key.resource_id,
                        item=key.item,
                        variant=key.variant,
                        quantity=quantity,
                    )
                )

        if applied:
            logger.info(
                "ledger_reserved",
                extra={
                    "ledger_key": str(key),
                    "quantity": quantity,
                    "new_version": expected_version + 1,
                },
            )
            return ReservationResult(ok=True, new_version=expected_version + 1)

        # Zero rows: classify from a fresh read.
        snapshot = self.read(key)
        self._verify(snapshot)
        if snapshot.version != expected_version:
            logger.info(
                "ledger_version_conflict",
                extra={
                    "ledger_key": str(key),
                    "expected_version": expected_version,
                    "actual_version": snapshot.version,
                },
            )
            raise ConflictError(
                "ledger_entry", str(key), expected_version, snapshot.version
            )
        logger.info(
            "ledger_insufficient_capacity",
            extra={
                "ledger_key": str(key),
                "requested": quantity,
                "remaining": snapshot.remaining,
            },
        )
        raise InsufficientCapacityError(str(key), quantity, snapshot.remaining)

    def release(
        self, key: LedgerKey, quantity: Decimal, *, hold: UUID | None = None
    ) -> LedgerSnapshot:
        """
        Subtract ``quantity`` from committed.

        Never fails for underflow.  If less than ``quantity`` is committed
        the counter is floored at zero, the key is halted pending
        investigation and a CRITICAL ``ledger_underflow`` record is logged.
        Releasing on a halted key is allowed.

        With ``hold`` the release applies only if that claim still holds
        the key, and the hold row is deleted in the same transaction, so
        releasing a hold twice gives the quantity back once.

        The plain and the flooring UPDATE run in one transaction; one of
        them matches unless a concurrent reserve moved the row between
        them, in which case both are rolled back and tried again.

        Raises:
            LedgerEntryNotFoundError: no entry for the key.
        """
        quantity = parse_quantity(quantity, str(key))

        while True:
            try:
                outcome, committed_before = self._release_once(key, quantity, hold)
                break
            except _RowMoved:
                logger.debug("ledger_release_retry", extra={"ledger_key": str(key)})

        snapshot = self.read(key)
        if outcome == "not_held":
            logger.info(
                "ledger_release_skipped",
                extra={"ledger_key": str(key), "claim_id": hold, "quantity": quantity},
            )
        elif outcome == "floored":
            logger.critical(
                "ledger_underflow",
                extra={
                    "ledger_key": str(key),
                    "quantity": quantity,
                    "committed_before": committed_before,
                },
            )
        else:
            logger.info(
                "ledger_released",
                extra={
                    "ledger_key": str(key),
                    "quantity": quantity,
                    "new_version": snapshot.version,
                },
            )
        return snapshot

    def _release_once(
        self, key: LedgerKey, quantity: Decimal, hold: UUID | None
    ) -> tuple[str, Decimal | None]:
        with session_scope(self._session_factory) as session:
            if hold is not None:
                dropped = session.execute(
                    delete(SubmissionHold).where(self._match_hold(hold, key))
                ).rowcount
                if dropped == 0:
                    return "not_held", None

            released = session.execute(
                update(LedgerEntry)
                .where(self._match(key), LedgerEntry.committed >= quantity)
                .values(
                    committed=LedgerEntry.committed - quantity,
                    version=LedgerEntry.version + 1,
                )
                .execution_options(synchronize_session=False)
            ).rowcount == 1
            if released:
                return "released", None

            before = session.execute(
                select(LedgerEntry.committed).where(self._match(key))
            ).scalar_one_or_none()
            if before is None:
                raise LedgerEntryNotFoundError(str(key))
            reason = f"release of {quantity} exceeds committed {before}"
            # INVARIANT: L4 -- floor at zero, only if still underflowing.
            floored = session.execute(
                update(LedgerEntry)
                .where(self._match(key), LedgerEntry.committed < quantity)
                .values(
                    committed=Decimal("0"),
                    version=LedgerEntry.version + 1,
                    halted=True,
                    halted_reason=reason,
                )
                .execution_options(synchronize_session=False)
            ).rowcount == 1
            if not floored:
                raise _RowMoved()
            return "floored", before

    def holds_for(self, claim_id: UUID) -> list[tuple[LedgerKey, Decimal]]:
        """Every (key, quantity) the claim still has committed, in key order."""
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(SubmissionHold)
                .where(SubmissionHold.claim_id == claim_id)
                .order_by(
                    SubmissionHold.scope,
                    SubmissionHold.resource_id,
                    SubmissionHold.item,
                    SubmissionHold.variant,
                )
            ).scalars().all()
            return [
                (
                    LedgerKey(LedgerScope(row.scope), row.resource_id, row.item, row.variant),
                    row.quantity,
                )
                for row in rows
            ]

    def _halt(self, key: LedgerKey, reason: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(
                update(LedgerEntry)
                .where(self._match(key))
                .values(
                    halted=True,
                    halted_reason=reason,
                    version=LedgerEntry.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        logger.critical(
            "ledger_consistency_fault",
            extra={"ledger_key": str(key), "reason": reason},
        )

    def resize(self, key: LedgerKey, capacity: Decimal, actor: Actor) -> LedgerSnapshot:
        """
        Replace the capacity of a product stock entry (restock, stock count).

        Listing entries are never resized: a listing's quantity_total is
        fixed at creation.  The new capacity may not drop below what is
        already committed.

        Raises:
            PermissionDeniedError: actor is not an admin, or the key is a
                listing line.
            InsufficientCapacityError: capacity < committed.
        """
        if actor.role != Role.ADMIN or key.scope != LedgerScope.PRODUCT:
            raise PermissionDeniedError(
                "ledger_entry", "resize", actor.actor_id,
                "only admins may resize product stock entries",
            )
        capacity = _checked_capacity(key, capacity)

        with session_scope(self._session_factory) as session:
            applied = session.execute(
                update(LedgerEntry)
                .where(self._match(key), LedgerEntry.committed <= capacity)
                .values(capacity=capacity, version=LedgerEntry.version + 1)
                .execution_options(synchronize_session=False)
            ).rowcount == 1
        snapshot = self.read(key)
        if not applied:
            raise InsufficientCapacityError(
                str(key), snapshot.committed, capacity
            )
        logger.info(
            "ledger_resized",
            extra={"ledger_key": str(key), "capacity": capacity, "actor_id": actor.actor_id},
        )
        return snapshot

    def clear_fault(self, key: LedgerKey, actor: Actor) -> LedgerSnapshot:
        """
        Re-enable a halted key after investigation.  Admin only.

        Raises:
            PermissionDeniedError: actor is not an admin.
            ConsistencyFaultError: the row still violates L1.
        """
        if actor.role != Role.ADMIN:
            raise PermissionDeniedError(
                "ledger_entry", "clear_fault", actor.actor_id,
                "only admins may clear a consistency fault",
            )
        snapshot = self.read(key)
        if not snapshot.is_consistent:
            raise ConsistencyFaultError(
                str(key), f"committed {snapshot.committed} outside [0, {snapshot.capacity}]"
            )
        with session_scope(self._session_factory) as session:
            session.execute(
                update(LedgerEntry)
                .where(self._match(key))
                .values(
                    halted=False,
                    halted_reason=None,
                    version=LedgerEntry.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        logger.warning(
            "ledger_fault_cleared",
            extra={
                "ledger_key": str(key),
                "actor_id": actor.actor_id,
                "previous_reason": snapshot.halted_reason,
            },
        )
        return self.read(key)
