"""
Kisaan Kernel - quantity ledger and lifecycle gating for the marketplace.

Provides:
- A per-(listing, line item) quantity ledger that never over-commits
- Optimistic-concurrency reservations with bounded retry
- A single transition gate for every lifecycle status change
- Typed errors and structured JSON logging
"""

__version__ = "0.1.0"
