"""
LedgerStore -- Transactional persistence interface the engine depends on.

Responsibility:
    Declares the unit-of-work contract (begin/commit/rollback plus the
    ``transaction()`` context manager) and the record-level reads and
    writes for loans and repayments.

Architecture position:
    Ledger > Store.  Implementations: SqlLedgerStore (SQLAlchemy) and
    InMemoryLedgerStore.  The engine and selectors depend only on this
    interface and the domain records.

Invariants enforced:
    - put_loan on an existing loan is an optimistic compare-and-increment:
      the persisted version must equal ``record.version``.
    - get_loan(for_update=True) serializes writers of the same loan group
      until the transaction ends.
    - A transaction opened with ``read_only=True`` never takes write locks.

Failure modes:
    - StaleRecordError from put_loan on version mismatch.
    - Implementation-specific transient errors (lock timeout, deadlock,
      serialization failure); ``is_transient_error`` classifies them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, NamedTuple
from uuid import UUID

from loan_ledger.domain.dtos import (
    LoanFilter,
    LoanRecord,
    RepaymentFilter,
    RepaymentRecord,
)
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import StaleRecordError
from loan_ledger.logging_config import get_logger

logger = get_logger("store")


class RepaidTotal(NamedTuple):
    """Sum and count of the repayments of one loan."""

    total: MoneyAmount
    count: int


class LedgerStore(ABC):
    """
    Abstract transactional store for loans and repayments.

    Contract:
        Every read and write takes the transaction handle returned by
        ``begin_transaction``.  Handles are single-threaded; share the
        store, not handles.
    """

    @abstractmethod
    def begin_transaction(self, read_only: bool = False) -> Any:
        """Open a transaction and return its handle."""

    @abstractmethod
    def commit(self, tx: Any) -> None:
        """Make the transaction's writes durable and release it."""

    @abstractmethod
    def rollback(self, tx: Any) -> None:
        """Discard the transaction's writes and release it."""

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Any]:
        """
        Run a block as one transaction.

        Commits on normal exit.  Rolls back on any exception and re-raises
        it.  Resources are released on both paths.
        """
        tx = self.begin_transaction(read_only=read_only)
        logger.debug("transaction_started", extra={"read_only": read_only})
        try:
            yield tx
        except BaseException:
            self.rollback(tx)
            logger.debug("transaction_rolled_back")
            raise
        self.commit(tx)
        logger.debug("transaction_committed")

    def is_transient_error(self, exc: BaseException) -> bool:
        """Check if ``exc`` is a conflict that a fresh attempt may resolve."""
        return isinstance(exc, StaleRecordError)

    # Loans

    @abstractmethod
    def get_loan(self, tx: Any, loan_id: UUID, for_update: bool = False) -> LoanRecord | None:
        """Fetch one loan, optionally locking its group for this transaction."""

    @abstractmethod
    def put_loan(self, tx: Any, record: LoanRecord) -> LoanRecord:
        """
        Insert or update a loan and return the stored record.

        A new loan is stored with version 1.  An existing loan must still
        be at ``record.version``; it is stored at ``record.version + 1``.

        Raises:
            StaleRecordError: The persisted version differs.
        """

    @abstractmethod
    def delete_loan(self, tx: Any, loan_id: UUID) -> None:
        """Remove a loan row.  Its repayments must already be gone."""

    @abstractmethod
    def list_loans(self, tx: Any, criteria: LoanFilter | None = None) -> list[LoanRecord]:
        """Loans matching ``criteria``, newest issue date first."""

    # Repayments

    @abstractmethod
    def get_repayment(self, tx: Any, repayment_id: UUID) -> RepaymentRecord | None:
        ...

    @abstractmethod
    def get_repayments_for_loan(self, tx: Any, loan_id: UUID) -> list[RepaymentRecord]:
        ...

    @abstractmethod
    def put_repayment(self, tx: Any, record: RepaymentRecord) -> RepaymentRecord:
        """Insert or update a repayment and return the stored record."""

    @abstractmethod
    def delete_repayment(self, tx: Any, repayment_id: UUID) -> None:
        ...

    @abstractmethod
    def list_repayments(
        self, tx: Any, criteria: RepaymentFilter | None = None
    ) -> list[RepaymentRecord]:
        """Repayments matching ``criteria``, newest date first, then newest entry."""

    @abstractmethod
    def repaid_totals(
        self, tx: Any, loan_ids: Iterable[UUID] | None = None
    ) -> dict[UUID, RepaidTotal]:
        """
        Repayment sum and count per loan.

        Loans without repayments are absent from the result.  ``None``
        means every loan in the store.
        """
