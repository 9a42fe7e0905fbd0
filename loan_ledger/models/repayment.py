"""
Module: loan_ledger.models.repayment
Responsibility: ORM persistence for repayments applied against loans.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - loan_id references loans.id (FK); a loan row cannot be deleted while
      repayments reference it.
    - employee_id is a denormalized copy of the owning loan's employee_id,
      written by the engine only.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from loan_ledger.db.base import TrackedBase, UUIDString
from loan_ledger.db.types import MoneyColumn


class Repayment(TrackedBase):
    """One payment applied against exactly one loan."""

    __tablename__ = "loan_repayments"

    __table_args__ = (
        Index("idx_repayment_loan", "loan_id"),
        Index("idx_repayment_employee", "employee_id"),
        Index("idx_repayment_date", "repay_date"),
    )

    loan_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("loans.id"),
        nullable=False,
    )

    employee_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    amount = mapped_column(MoneyColumn(), nullable=False)

    repay_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<Repayment {self.id}: loan {self.loan_id}, {self.amount} on {self.repay_date}>"
