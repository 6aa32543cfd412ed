"""
Fulfillment Module.

Offers made by one actor against the crop lines of another actor's listing:
pending -> [pending_verification ->] approved | rejected.  Rejection gives
the reserved quantity back to the listing.
"""

from kisaan_modules.fulfillment.models import (
    FulfillmentOffer,
    FulfillmentStatus,
    OfferLine,
)
from kisaan_modules.fulfillment.workflows import FULFILLMENT_WORKFLOW

__all__ = [
    "FULFILLMENT_WORKFLOW",
    "FulfillmentOffer",
    "FulfillmentStatus",
    "OfferLine",
]
