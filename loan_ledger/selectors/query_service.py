"""
Module: loan_ledger.selectors.query_service
Responsibility: Read-only projections over the ledger: active loans,
    repayment histories, per-employee outstanding totals and whole-ledger
    statistics.
Architecture position: Ledger > Selectors.  May import from store/ and
    domain/.  MUST NOT import from services/.  Selectors NEVER create,
    modify, or delete data.

Invariants enforced:
    - Read-only access: every query runs in a read-only store transaction
      and never calls a store write method.
    - No stored balances: every balance is recomputed from the repayments
      on each call.
    - Last-committed view: queries take no loan locks.  A balance read
      here may be stale by the time the caller acts on it; decisions go
      through LedgerEngine.get_balance.

Failure modes:
    - LoanNotFoundError / RepaymentNotFoundError for unknown identifiers
      on the single-record lookups and repayment_history.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loan_ledger.domain.dtos import (
    AggregateStatistics,
    LoanBalance,
    LoanFilter,
    LoanRecord,
    RepaymentFilter,
    RepaymentRecord,
)
from loan_ledger.domain.parsing import parse_loan_id, parse_repayment_id, parse_status
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import LoanNotFoundError, RepaymentNotFoundError
from loan_ledger.models.loan import LoanStatus
from loan_ledger.store.base import LedgerStore, RepaidTotal


class QueryService:
    """
    Read side of the ledger.

    Contract:
        Each method opens its own read-only transaction, so the values it
        returns are consistent with each other.  Separate calls may see
        different committed states.

    Non-goals:
        - Does NOT lock anything; not a basis for write decisions.
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    # Loans

    def get_loan(self, loan_id: UUID | str) -> LoanRecord:
        lid = parse_loan_id(loan_id)
        with self._store.transaction(read_only=True) as tx:
            loan = self._store.get_loan(tx, lid)
        if loan is None:
            raise LoanNotFoundError(lid)
        return loan

    def list_loans(self, criteria: LoanFilter | None = None) -> list[LoanRecord]:
        """Loans matching ``criteria``, newest issue date first."""
        with self._store.transaction(read_only=True) as tx:
            return self._store.list_loans(tx, criteria)

    def loans_for_employee(self, employee_id: int) -> list[LoanRecord]:
        """All of an employee's loans, active or not."""
        return self.list_loans(LoanFilter(employee_id=employee_id))

    def active_loans_for_employee(self, employee_id: int) -> list[LoanRecord]:
        """An employee's ACTIVE loans, newest issue date first."""
        return self.list_loans(
            LoanFilter(employee_id=employee_id, status=LoanStatus.ACTIVE)
        )

    # Repayments

    def get_repayment(self, repayment_id: UUID | str) -> RepaymentRecord:
        rid = parse_repayment_id(repayment_id)
        with self._store.transaction(read_only=True) as tx:
            repayment = self._store.get_repayment(tx, rid)
        if repayment is None:
            raise RepaymentNotFoundError(rid)
        return repayment

    def list_repayments(
        self, criteria: RepaymentFilter | None = None
    ) -> list[RepaymentRecord]:
        """Repayments matching ``criteria``, newest first."""
        with self._store.transaction(read_only=True) as tx:
            return self._store.list_repayments(tx, criteria)

    def repayment_history(self, loan_id: UUID | str) -> list[RepaymentRecord]:
        """
        Every repayment of one loan, newest repay date first.

        Repayments on the same date are ordered newest entry first.

        Raises:
            LoanNotFoundError: The loan does not exist.
        """
        lid = parse_loan_id(loan_id)
        with self._store.transaction(read_only=True) as tx:
            if self._store.get_loan(tx, lid) is None:
                raise LoanNotFoundError(lid)
            return self._store.list_repayments(tx, RepaymentFilter(loan_id=lid))

    def repayments_for_employee(self, employee_id: int) -> list[RepaymentRecord]:
        return self.list_repayments(RepaymentFilter(employee_id=employee_id))

    # Balances

    def balance_view(self, loan_id: UUID | str) -> LoanBalance:
        """
        Unlocked balance of one loan, for display.

        Raises:
            LoanNotFoundError: The loan does not exist.
        """
        lid = parse_loan_id(loan_id)
        with self._store.transaction(read_only=True) as tx:
            loan = self._store.get_loan(tx, lid)
            if loan is None:
                raise LoanNotFoundError(lid)
            repaid = self._store.repaid_totals(tx, [lid])
        return _balance(loan, repaid)

    def loans_with_balances(
        self,
        employee_id: int | None = None,
        status: LoanStatus | str | None = None,
    ) -> list[LoanBalance]:
        """Balances of every loan matching the optional employee and status."""
        criteria = LoanFilter(
            employee_id=employee_id,
            status=parse_status(status) if status is not None else None,
        )
        with self._store.transaction(read_only=True) as tx:
            loans = self._store.list_loans(tx, criteria)
            repaid = self._store.repaid_totals(tx, [loan.id for loan in loans])
        return [_balance(loan, repaid) for loan in loans]

    def total_outstanding_for_employee(self, employee_id: int) -> MoneyAmount:
        """Sum of the remaining balances of the employee's ACTIVE loans."""
        balances = self.loans_with_balances(
            employee_id=employee_id, status=LoanStatus.ACTIVE
        )
        return MoneyAmount.total(b.remaining for b in balances)

    def aggregate_statistics(self) -> AggregateStatistics:
        """
        Point-in-time totals over the whole ledger.

        Outstanding covers inactive loans too: inactivation does not
        forgive a balance.
        """
        with self._store.transaction(read_only=True) as tx:
            loans = self._store.list_loans(tx)
            repaid = self._store.repaid_totals(tx)

        total_loans = MoneyAmount.total(loan.principal for loan in loans)
        total_repaid = MoneyAmount.total(t.total for t in repaid.values())
        return AggregateStatistics(
            total_loans=total_loans,
            total_repaid=total_repaid,
            total_outstanding=total_loans - total_repaid,
            loan_count=len(loans),
            repayment_count=sum(t.count for t in repaid.values()),
            active_loan_count=sum(1 for loan in loans if loan.is_active),
        )


def _balance(loan: LoanRecord, repaid: dict[Any, RepaidTotal]) -> LoanBalance:
    paid = repaid.get(loan.id, RepaidTotal(MoneyAmount.zero(), 0))
    return LoanBalance(
        loan_id=loan.id,
        employee_id=loan.employee_id,
        principal=loan.principal,
        total_repaid=paid.total,
        repayment_count=paid.count,
        status=loan.status,
    )
