"""
InMemoryLedgerStore -- LedgerStore held in process memory.

Responsibility:
    A complete LedgerStore for tests, tools and embedding without a
    database.  Same contract and same ordering rules as SqlLedgerStore.

Architecture position:
    Ledger > Store.  Pure Python, imports only domain/ and exceptions.

Invariants enforced:
    - Transactions are serialized by one store-wide re-entrant lock held
      from begin to commit/rollback; a write transaction works on private
      copies of the tables and publishes them on commit.
    - Rollback discards the copies, so a failure at any point leaves the
      committed state untouched.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from uuid import UUID

from loan_ledger.domain.dtos import (
    LoanFilter,
    LoanRecord,
    RepaymentFilter,
    RepaymentRecord,
)
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import StaleRecordError
from loan_ledger.store.base import LedgerStore, RepaidTotal


@dataclass
class _Tables:
    loans: dict[UUID, LoanRecord] = field(default_factory=dict)
    repayments: dict[UUID, RepaymentRecord] = field(default_factory=dict)
    # Insertion sequence per record, the creation-order tie-break
    created_seq: dict[UUID, int] = field(default_factory=dict)

    def copy(self) -> _Tables:
        return _Tables(dict(self.loans), dict(self.repayments), dict(self.created_seq))


@dataclass
class MemoryTransaction:
    """Handle for one in-memory transaction."""

    tables: _Tables
    read_only: bool
    closed: bool = False


class InMemoryLedgerStore(LedgerStore):
    """LedgerStore over plain dicts, safe for use from many threads."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._committed = _Tables()
        self._sequence = itertools.count(1)

    def begin_transaction(self, read_only: bool = False) -> MemoryTransaction:
        self._lock.acquire()
        tables = self._committed if read_only else self._committed.copy()
        return MemoryTransaction(tables=tables, read_only=read_only)

    def commit(self, tx: MemoryTransaction) -> None:
        self._check_open(tx)
        try:
            if not tx.read_only:
                self._committed = tx.tables
        finally:
            tx.closed = True
            self._lock.release()

    def rollback(self, tx: MemoryTransaction) -> None:
        self._check_open(tx)
        tx.closed = True
        self._lock.release()

    @staticmethod
    def _check_open(tx: MemoryTransaction) -> None:
        if tx.closed:
            raise RuntimeError("Transaction already closed")

    @staticmethod
    def _writable(tx: MemoryTransaction) -> _Tables:
        InMemoryLedgerStore._check_open(tx)
        if tx.read_only:
            raise RuntimeError("Write attempted in a read-only transaction")
        return tx.tables

    # Loans

    def get_loan(
        self, tx: MemoryTransaction, loan_id: UUID, for_update: bool = False
    ) -> LoanRecord | None:
        # The store-wide lock already serializes the group
        return tx.tables.loans.get(loan_id)

    def put_loan(self, tx: MemoryTransaction, record: LoanRecord) -> LoanRecord:
        tables = self._writable(tx)
        current = tables.loans.get(record.id)
        if current is None:
            stored = replace(record, version=1)
            tables.created_seq[record.id] = next(self._sequence)
        else:
            if current.version != record.version:
                raise StaleRecordError("Loan", record.id, record.version, current.version)
            stored = replace(record, version=record.version + 1)
        tables.loans[record.id] = stored
        return stored

    def delete_loan(self, tx: MemoryTransaction, loan_id: UUID) -> None:
        tables = self._writable(tx)
        if any(r.loan_id == loan_id for r in tables.repayments.values()):
            raise RuntimeError(f"Loan {loan_id} still has repayments")
        tables.loans.pop(loan_id, None)
        tables.created_seq.pop(loan_id, None)

    def list_loans(
        self, tx: MemoryTransaction, criteria: LoanFilter | None = None
    ) -> list[LoanRecord]:
        criteria = criteria or LoanFilter()
        seq = tx.tables.created_seq
        loans = [loan for loan in tx.tables.loans.values() if criteria.matches(loan)]
        loans.sort(key=lambda loan: (loan.issue_date, seq[loan.id]), reverse=True)
        return loans

    # Repayments

    def get_repayment(
        self, tx: MemoryTransaction, repayment_id: UUID
    ) -> RepaymentRecord | None:
        return tx.tables.repayments.get(repayment_id)

    def get_repayments_for_loan(
        self, tx: MemoryTransaction, loan_id: UUID
    ) -> list[RepaymentRecord]:
        seq = tx.tables.created_seq
        repayments = [r for r in tx.tables.repayments.values() if r.loan_id == loan_id]
        repayments.sort(key=lambda r: (r.repay_date, seq[r.id]))
        return repayments

    def put_repayment(
        self, tx: MemoryTransaction, record: RepaymentRecord
    ) -> RepaymentRecord:
        tables = self._writable(tx)
        if record.loan_id not in tables.loans:
            raise RuntimeError(f"Repayment {record.id} references unknown loan {record.loan_id}")
        if record.id not in tables.repayments:
            tables.created_seq[record.id] = next(self._sequence)
        stored = replace(record, remaining_balance=None)
        tables.repayments[record.id] = stored
        return stored

    def delete_repayment(self, tx: MemoryTransaction, repayment_id: UUID) -> None:
        tables = self._writable(tx)
        tables.repayments.pop(repayment_id, None)
        tables.created_seq.pop(repayment_id, None)

    def list_repayments(
        self, tx: MemoryTransaction, criteria: RepaymentFilter | None = None
    ) -> list[RepaymentRecord]:
        criteria = criteria or RepaymentFilter()
        seq = tx.tables.created_seq
        repayments = [r for r in tx.tables.repayments.values() if criteria.matches(r)]
        repayments.sort(key=lambda r: (r.repay_date, seq[r.id]), reverse=True)
        return repayments

    def repaid_totals(
        self, tx: MemoryTransaction, loan_ids: Iterable[UUID] | None = None
    ) -> dict[UUID, RepaidTotal]:
        wanted = set(loan_ids) if loan_ids is not None else None
        grouped: dict[UUID, list[MoneyAmount]] = {}
        for repayment in tx.tables.repayments.values():
            if wanted is None or repayment.loan_id in wanted:
                grouped.setdefault(repayment.loan_id, []).append(repayment.amount)
        return {
            loan_id: RepaidTotal(MoneyAmount.total(amounts), len(amounts))
            for loan_id, amounts in grouped.items()
        }
