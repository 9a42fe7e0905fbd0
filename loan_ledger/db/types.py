"""
Module: loan_ledger.db.types
Responsibility: Column types and precision constants for ledger data.
    Centralizes the money scale so that the value object, the persisted
    column and the API layer agree on it.
Architecture position: Ledger > DB.  May be imported by models/, domain/,
    store/ and services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  Money is persisted as an integer
      count of minor units (BigInteger), which is exact on every backend
      (SQLite stores NUMERIC as REAL).
    - MONEY_DECIMAL_PLACES is the single definition of money scale.
    - MAX_MINOR_UNITS bounds every amount the ledger accepts for storage.

Failure modes:
    - InvalidAmountError (via MoneyAmount) if a bound value is not a
      MoneyAmount-compatible amount.
"""

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

# Monetary scale: 2 fraction digits (cents)
MONEY_DECIMAL_PLACES = 2

# Largest count of minor units a signed 64-bit BigInteger column holds
MAX_MINOR_UNITS = 2**63 - 1


class MoneyColumn(TypeDecorator):
    """
    MoneyAmount stored as BigInteger minor units.

    Contract:
        Transparently converts between MoneyAmount and an integer count of
        minor units.

    Guarantees:
        - process_bind_param: MoneyAmount -> int on INSERT/UPDATE.
        - process_result_value: int -> MoneyAmount on SELECT.
        - Aggregates (SUM) over the column are exact integer arithmetic.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert MoneyAmount (or raw amount) to minor units when storing."""
        if value is None:
            return None
        from loan_ledger.domain.values import MoneyAmount

        return MoneyAmount.of(value).minor_units

    def process_result_value(self, value, dialect):
        """Convert minor units back to MoneyAmount when loading."""
        if value is None:
            return None
        from loan_ledger.domain.values import MoneyAmount

        return MoneyAmount.from_minor_units(int(value))
