"""
Module: loan_ledger.models.loan
Responsibility: ORM persistence for loans issued to employees.
Architecture position: Ledger > Models.  May import from db/ only.
    MUST NOT import from store/, services/, selectors/ or domain/.

Invariants enforced:
    - principal is stored as exact minor units (MoneyColumn).
    - version is an application-managed optimistic lock column: every
      UPDATE carries ``WHERE version = :old`` and fails with StaleDataError
      when another transaction changed the loan group first.
    Balance invariants (repaid <= principal) are enforced by the engine, not
    here.

Failure modes:
    - StaleDataError on a version mismatch during flush.
"""

from datetime import date
from enum import Enum

from sqlalchemy import BigInteger, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from loan_ledger.db.base import TrackedBase
from loan_ledger.db.types import MoneyColumn


class LoanStatus(str, Enum):
    """Loan visibility status.

    Contract: INACTIVE loans drop out of active-loan projections and accept
    no new repayments.  Status never affects balance arithmetic.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"


class Loan(TrackedBase):
    """
    One loan issued to one employee.

    Guarantees:
        - employee_id references the external employee register.
        - version increases by one on every committed change to the loan
          or to its repayment set.

    Non-goals:
        - No interest, schedule or currency.
    """

    __tablename__ = "loans"

    __table_args__ = (
        Index("idx_loan_employee", "employee_id"),
        Index("idx_loan_status", "status"),
    )

    employee_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    principal = mapped_column(MoneyColumn(), nullable=False)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=LoanStatus.ACTIVE.value,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return f"<Loan {self.id}: employee {self.employee_id}, {self.principal} ({self.status})>"
