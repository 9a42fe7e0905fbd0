"""Transactional persistence for loans and repayments."""

from loan_ledger.store.base import LedgerStore, RepaidTotal
from loan_ledger.store.memory_store import InMemoryLedgerStore, MemoryTransaction
from loan_ledger.store.sql_store import SqlLedgerStore

__all__ = [
    "InMemoryLedgerStore",
    "LedgerStore",
    "MemoryTransaction",
    "RepaidTotal",
    "SqlLedgerStore",
]
