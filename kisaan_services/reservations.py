"""
ReservationCoordinator -- all-or-nothing reservation across ledger keys.

Responsibility:
    Turns a set of (key, quantity) requests into ledger reservations that
    either all stand or are all given back.  Shared by the Offer Builder
    (submission) and the bulk restock editor (quantity increases).

Discipline:
    - Keys are reserved in sorted order, so two submissions touching the
      same keys always contend in the same order.
    - ConflictError (stale version) is retried with the configured
      RetryPolicy, re-reading the entry before every attempt.
    - InsufficientCapacityError and ConsistencyFaultError are never retried.
    - On any failure every reservation already made by this call is
      released before the original exception propagates unchanged.
    - Given a claim id, every reservation and release is recorded as a
      SubmissionHold of that claim, so ``release_held`` can give back
      exactly what an interrupted submission left committed.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from kisaan_kernel.domain.retry import RetryPolicy
from kisaan_kernel.domain.values import LedgerKey
from kisaan_kernel.exceptions import ConflictError
from kisaan_kernel.logging_config import get_logger
from kisaan_kernel.services.ledger_service import LedgerService

logger = get_logger("services.reservations")


@dataclass(frozen=True)
class ReservationRequest:
    """
    One ledger reservation to make.

    ``capacity`` is the quantity_total (or product stock) used to open the
    entry if nobody has reserved against the key before.
    """

    key: LedgerKey
    quantity: Decimal
    capacity: Decimal


class ReservationCoordinator:
    def __init__(
        self,
        ledger: LedgerService,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self._ledger = ledger
        self._policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    def reserve_all(
        self, requests: Iterable[ReservationRequest], *, hold: UUID | None = None
    ) -> tuple[ReservationRequest, ...]:
        """
        Reserve every request, in key order, or none of them.

        Returns the requests in the order they were applied.
        """
        ordered = sorted(requests, key=lambda r: r.key)
        applied: list[ReservationRequest] = []
        try:
            for request in ordered:
                self._reserve_one(request, hold)
                applied.append(request)
        except Exception as exc:
            logger.info(
                "reservation_rolled_back",
                extra={
                    "failed_after": len(applied),
                    "requested": len(ordered),
                    "error_code": getattr(exc, "code", type(exc).__name__),
                },
            )
            self.release_all(applied, hold=hold)
            raise
        return tuple(applied)

    def release_all(
        self, requests: Iterable[ReservationRequest], *, hold: UUID | None = None
    ) -> None:
        """Give back each request's quantity, in reverse key order."""
        for request in sorted(requests, key=lambda r: r.key, reverse=True):
            self._ledger.release(request.key, request.quantity, hold=hold)

    def release_held(self, claim_id: UUID) -> int:
        """Give back everything ``claim_id`` still holds.  Returns the key count."""
        held = self._ledger.holds_for(claim_id)
        for key, quantity in reversed(held):
            self._ledger.release(key, quantity, hold=claim_id)
        if held:
            logger.info(
                "reservation_holds_released",
                extra={"claim_id": claim_id, "released": len(held)},
            )
        return len(held)

    def _reserve_one(self, request: ReservationRequest, hold: UUID | None = None) -> None:
        self._ledger.open_entry(request.key, request.capacity)
        attempts = self._policy.max_attempts
        for attempt in range(1, attempts + 1):
            snapshot = self._ledger.read(request.key)
            try:
                self._ledger.reserve(
                    request.key, request.quantity, snapshot.version, hold=hold
                )
                return
            except ConflictError:
                if attempt == attempts:
                    logger.warning(
                        "reservation_conflict_exhausted",
                        extra={"ledger_key": str(request.key), "attempts": attempts},
                    )
                    raise
                delay = self._policy.delay_for(attempt, self._rng)
                logger.debug(
                    "reservation_conflict_retry",
                    extra={
                        "ledger_key": str(request.key),
                        "attempt": attempt,
                        "delay_s": round(delay, 4),
                    },
                )
                self._sleep(delay)
