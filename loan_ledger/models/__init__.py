"""ORM models for the loan ledger."""

from loan_ledger.models.loan import Loan, LoanStatus
from loan_ledger.models.repayment import Repayment

__all__ = [
    "Loan",
    "LoanStatus",
    "Repayment",
]
