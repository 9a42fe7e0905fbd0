"""
DTOs -- Immutable records exchanged between the store, engine and callers.

Responsibility:
    Defines LoanRecord and RepaymentRecord (the ledger's two entities as
    seen outside the persistence layer), the derived LoanBalance view, the
    AggregateStatistics snapshot, and the filter objects accepted by list
    queries.

Architecture position:
    Ledger > Domain.  Shares the LoanStatus enum with the model layer but
    never touches a session.  Store implementations convert to and from
    these; the engine and selectors only ever see these.

Invariants enforced:
    - Records are frozen; edits produce new records via dataclasses.replace.
    - LoanBalance is computed, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from loan_ledger.domain.values import MoneyAmount
from loan_ledger.models.loan import LoanStatus


@dataclass(frozen=True)
class LoanRecord:
    """
    One loan issued to one employee.

    ``version`` is the optimistic-lock counter of the whole loan group;
    a freshly built record that has never been stored has version 0.
    """

    id: UUID
    employee_id: int
    principal: MoneyAmount
    issue_date: date
    reason: str
    status: LoanStatus = LoanStatus.ACTIVE
    version: int = 0
    created_by: str | None = None
    updated_by: str | None = None

    @property
    def is_active(self) -> bool:
        """Check if the loan accepts new repayments."""
        return self.status == LoanStatus.ACTIVE


@dataclass(frozen=True)
class RepaymentRecord:
    """
    One payment applied against one loan.

    ``remaining_balance`` is attached by the engine to the record returned
    from record/edit operations.  It is never persisted.
    """

    id: UUID
    loan_id: UUID
    employee_id: int
    amount: MoneyAmount
    repay_date: date
    created_by: str | None = None
    updated_by: str | None = None
    remaining_balance: MoneyAmount | None = None


@dataclass(frozen=True)
class LoanBalance:
    """Balance of a single loan, derived from its repayments."""

    loan_id: UUID
    employee_id: int
    principal: MoneyAmount
    total_repaid: MoneyAmount
    repayment_count: int
    status: LoanStatus

    @classmethod
    def compute(cls, loan: LoanRecord, repayments: list[RepaymentRecord]) -> LoanBalance:
        """Derive the balance of ``loan`` from its full repayment set."""
        return cls(
            loan_id=loan.id,
            employee_id=loan.employee_id,
            principal=loan.principal,
            total_repaid=MoneyAmount.total(r.amount for r in repayments),
            repayment_count=len(repayments),
            status=loan.status,
        )

    @property
    def remaining(self) -> MoneyAmount:
        """Principal minus total repaid.  Never negative (raises if it would be)."""
        return self.principal - self.total_repaid

    @property
    def repayment_percentage(self) -> int:
        """round(100 * repaid / principal), capped at 100."""
        return self.total_repaid.percent_of(self.principal)

    @property
    def is_settled(self) -> bool:
        """Check if nothing is left to repay."""
        return self.remaining.is_zero


@dataclass(frozen=True)
class AggregateStatistics:
    """Point-in-time totals over the whole ledger."""

    total_loans: MoneyAmount
    total_repaid: MoneyAmount
    total_outstanding: MoneyAmount
    loan_count: int
    repayment_count: int
    active_loan_count: int


@dataclass(frozen=True)
class LoanFilter:
    """Criteria for listing loans.  ``None`` means "any"."""

    employee_id: int | None = None
    status: LoanStatus | None = None
    issued_from: date | None = None
    issued_to: date | None = None
    min_principal: MoneyAmount | None = None

    def matches(self, loan: LoanRecord) -> bool:
        """In-process evaluation of the filter."""
        if self.employee_id is not None and loan.employee_id != self.employee_id:
            return False
        if self.status is not None and loan.status != self.status:
            return False
        if self.issued_from is not None and loan.issue_date < self.issued_from:
            return False
        if self.issued_to is not None and loan.issue_date > self.issued_to:
            return False
        if self.min_principal is not None and loan.principal < self.min_principal:
            return False
        return True


@dataclass(frozen=True)
class RepaymentFilter:
    """Criteria for listing repayments.  ``None`` means "any"."""

    loan_id: UUID | None = None
    employee_id: int | None = None
    repaid_from: date | None = None
    repaid_to: date | None = None

    def matches(self, repayment: RepaymentRecord) -> bool:
        """In-process evaluation of the filter."""
        if self.loan_id is not None and repayment.loan_id != self.loan_id:
            return False
        if self.employee_id is not None and repayment.employee_id != self.employee_id:
            return False
        if self.repaid_from is not None and repayment.repay_date < self.repaid_from:
            return False
        if self.repaid_to is not None and repayment.repay_date > self.repaid_to:
            return False
        return True
