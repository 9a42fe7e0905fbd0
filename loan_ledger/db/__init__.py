"""Database layer - engine, base classes and column types."""

from loan_ledger.db.base import UUID, Base, TrackedBase, UUIDString
from loan_ledger.db.engine import create_tables, get_engine, get_session_factory
from loan_ledger.db.types import MONEY_DECIMAL_PLACES, MoneyColumn

__all__ = [
    "get_engine",
    "get_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MoneyColumn",
    "MONEY_DECIMAL_PLACES",
]
