"""
Typed Exception Hierarchy for the Kisaan Marketplace Core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The core is consumed by an HTTP/RPC layer that must translate every failure
into a response the actor can act on ("not enough remaining", "listing
changed, please retry", "you cannot approve your own offer").  Callers must
be able to do that without parsing message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from KisaanKernelError:

    KisaanKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyOfferError
    |   +-- InvalidQuantityError
    |   |   +-- NonPositiveQuantityError
    |   +-- UnknownLineItemError
    |   +-- DuplicateLineItemError
    |   +-- QuantityExceedsRemainingError
    |   +-- ListingInactiveError
    |   +-- IdempotencyKeyReuseError
    |
    +-- NotFoundError
    |   +-- ListingNotFoundError
    |   +-- ProductNotFoundError
    |   +-- RecordNotFoundError
    |   +-- LedgerEntryNotFoundError
    |
    +-- InsufficientCapacityError
    |
    +-- ConflictError
    |   +-- SubmissionInProgressError
    |
    +-- IllegalTransitionError
    |
    +-- PermissionDeniedError
    |
    +-- ConsistencyFaultError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | Retried?
----------------|------------------------------|-----------------------------
Validation      | VALIDATION_ERROR (+ subtypes)| never
Not found       | *_NOT_FOUND                  | never
Capacity        | INSUFFICIENT_CAPACITY        | never (request is invalid now)
Conflict        | CONFLICT                     | internally, bounded backoff
                | SUBMISSION_IN_PROGRESS       | by the caller, after a pause
Transition      | ILLEGAL_TRANSITION           | never (programming error)
Permission      | PERMISSION_DENIED            | never
Consistency     | CONSISTENCY_FAULT            | never; ledger key is halted

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        offer = builder.submit_offer(draft, idempotency_key=key, actor=actor)
    except InsufficientCapacityError as e:
        respond(409, code=e.code, remaining=e.remaining)
    except ConflictError as e:
        respond(409, code=e.code, retry=True)
    except ValidationError as e:
        respond(422, code=e.code)

ConsistencyFaultError means the committed <= capacity invariant was found
violated.  It must never be caught and "fixed" by the caller; the key stays
halted until an admin clears it.
"""

from decimal import Decimal


class KisaanKernelError(Exception):
    """
    Base exception for all kisaan core errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "KISAAN_KERNEL_ERROR"


# Validation exceptions


class ValidationError(KisaanKernelError):
    """Malformed input.  Recoverable locally, never retried automatically."""

    code: str = "VALIDATION_ERROR"


class EmptyOfferError(ValidationError):
    """An offer or order was submitted with no lines."""

    code: str = "EMPTY_OFFER"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"{entity_type} must contain at least one line")


class InvalidQuantityError(ValidationError):
    """A requested quantity is not a usable number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, line: str, quantity: object, reason: str):
        self.line = line
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r} for {line}: {reason}")


class NonPositiveQuantityError(InvalidQuantityError):
    """A requested quantity is zero or negative."""

    code: str = "NON_POSITIVE_QUANTITY"

    def __init__(self, line: str, quantity: object):
        super().__init__(line, quantity, "must be greater than zero")


class UnknownLineItemError(ValidationError):
    """The requested line item key does not exist on the listing."""

    code: str = "UNKNOWN_LINE_ITEM"

    def __init__(self, listing_id: str, line: str):
        self.listing_id = listing_id
        self.line = line
        super().__init__(f"Listing {listing_id} has no line item {line}")


class DuplicateLineItemError(ValidationError):
    """The same line item key appears twice in one offer."""

    code: str = "DUPLICATE_LINE_ITEM"

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"Line item {line} appears more than once")


class QuantityExceedsRemainingError(ValidationError):
    """
    Requested quantity exceeds the remaining capacity read at build time.

    Advisory only: raised by the Offer Builder pre-check.  The authoritative
    capacity failure at submission is InsufficientCapacityError.
    """

    code: str = "QUANTITY_EXCEEDS_REMAINING"

    def __init__(self, line: str, requested: Decimal, remaining: Decimal):
        self.line = line
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Requested {requested} of {line} but only {remaining} remains"
        )


class ListingInactiveError(ValidationError):
    """Offers cannot be made against an inactive listing."""

    code: str = "LISTING_INACTIVE"

    def __init__(self, listing_id: str):
        self.listing_id = listing_id
        super().__init__(f"Listing {listing_id} is not active")


class IdempotencyKeyReuseError(ValidationError):
    """The idempotency key was already used for a different request."""

    code: str = "IDEMPOTENCY_KEY_REUSE"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Idempotency key {idempotency_key} was already used "
            "with a different payload"
        )


# Lookup exceptions


class NotFoundError(KisaanKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ListingNotFoundError(NotFoundError):
    code: str = "LISTING_NOT_FOUND"

    def __init__(self, listing_id: str):
        self.listing_id = listing_id
        super().__init__(f"Listing not found: {listing_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class RecordNotFoundError(NotFoundError):
    """A lifecycle record (offer, order, bulk order) does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class LedgerEntryNotFoundError(NotFoundError):
    """No ledger entry has been opened for the key."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No ledger entry for {key}")


# Capacity


class InsufficientCapacityError(KisaanKernelError):
    """
    A well-formed request that cannot be satisfied at this moment.

    Surfaced as "not enough remaining".  Never retried automatically: the
    request itself is invalid at this quantity.
    """

    code: str = "INSUFFICIENT_CAPACITY"

    def __init__(self, key: str, requested: Decimal, remaining: Decimal):
        self.key = key
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Insufficient capacity on {key}: requested {requested}, "
            f"remaining {remaining}"
        )


# Concurrency


class ConflictError(KisaanKernelError):
    """
    Optimistic-concurrency collision.

    Retried internally a bounded number of times; when it escapes to the
    caller it means "the listing changed, please retry".
    """

    code: str = "CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}{detail}"
        )


class SubmissionInProgressError(ConflictError):
    """Another attempt with the same idempotency key has not finished yet."""

    code: str = "SUBMISSION_IN_PROGRESS"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__("submission", idempotency_key)


# Lifecycle


class IllegalTransitionError(KisaanKernelError):
    """The requested status change is not in the transition gate table."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Illegal {entity_type} transition: {from_status} -> {to_status}"
        )


class PermissionDeniedError(KisaanKernelError):
    """The actor is not authorized for the attempted transition or edit."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, entity_type: str, action: str, actor_id: str, reason: str):
        self.entity_type = entity_type
        self.action = action
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} may not {action} {entity_type}: {reason}"
        )


# Consistency


class ConsistencyFaultError(KisaanKernelError):
    """
    The ledger invariant 0 <= committed <= capacity was found violated.

    Fatal.  The ledger key is halted; no further reservations are accepted
    on it until an admin clears the fault.
    """

    code: str = "CONSISTENCY_FAULT"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Ledger consistency fault on {key}: {reason}")
