"""
Module: kisaan_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for lifecycle timestamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model gets a uuid4-generated primary key.
    - Quantity precision: type_annotation_map maps Python Decimal to
      Numeric(18, 6).  Quantities and prices are NEVER floats in Python.
    - Counters compared inside SQL (ledger capacity and committed) use
      ScaledDecimal: exact integers on every backend, including SQLite,
      which stores Numeric as a float.
    - External references (listing ids, product ids, actor ids) are plain
      String(100) columns with no foreign key: those entities live in the
      external catalog and identity services.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Transparently converts between Python UUID objects and their 36-character
    string representation.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class ScaledDecimal(TypeDecorator):
    """
    Decimal stored as a BigInteger count of 10**-places units.

    0.1 + 0.2 <= 0.3 holds in SQL because the database sees 100000 +
    200000 <= 300000.  Bound values with more than ``places`` decimal
    places are rejected rather than rounded.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int = 6):
        super().__init__()
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = Decimal(str(value)).scaleb(self.places)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value} has more than {self.places} decimal places")
        return int(scaled)

    def process_result_value(self, value, dialect):
        if value is not None:
            return Decimal(int(value)).scaleb(-self.places)
        return None

    def coerce_compared_value(self, op, value):
        # Literals in `committed + :q <= capacity` are scaled the same way.
        return self


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(18, 6).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 6, asdecimal=True),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base for lifecycle records with timestamps and creator.

    Contract:
        Services set created_at/updated_at explicitly from the injected
        Clock so tests stay deterministic; the server defaults only cover
        rows written outside the services (fixtures, migrations).

    Guarantees:
        - created_by is required: every record has a creating actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by: Mapped[str] = mapped_column(String(100), nullable=False)


# Re-export UUID for convenience
UUID = PyUUID
