"""
Deterministic request fingerprints.

A submission's fingerprint is the SHA-256 of its canonical JSON form.  It is
stored with the idempotency claim so that a replay carrying the same key
but a different payload is refused instead of answered with the wrong
record.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 7, 7.0 and 7.000000 are the same quantity
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, Decimals normalized."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of ``payload`` (64 characters)."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
