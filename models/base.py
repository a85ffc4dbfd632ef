# models/base.py
"""
Base model, mixins and column types for all database tables.
"""
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime, BigInteger
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

Base = declarative_base()


class AuditMixin:
    createdAt = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
    updatedAt = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                       onupdate=lambda: datetime.now(timezone.utc))


class ExactDecimal(TypeDecorator):
    """
    Fixed-point Decimal stored as a scaled integer (12.34 -> 1234 at scale 2).

    SQLite keeps DECIMAL columns as REAL, so relative updates and >= guards
    would run on binary floats there. Integers keep ledger arithmetic exact
    on every backend. Bound literals in expressions such as
    ``Wallet.balance + delta`` are scaled through this type as well.
    """
    impl = BigInteger
    cache_ok = True

    def __init__(self, scale: int = 2):
        super().__init__()
        self.scale = scale
        self.quantum = Decimal(1).scaleb(-scale)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return int(value.quantize(self.quantum, rounding=ROUND_HALF_UP).scaleb(self.scale))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.scale)

    @property
    def python_type(self):
        return Decimal
