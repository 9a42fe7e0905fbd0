"""Pure domain layer: money, clock and ledger records."""

from loan_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from loan_ledger.domain.dtos import (
    AggregateStatistics,
    LoanBalance,
    LoanFilter,
    LoanRecord,
    RepaymentFilter,
    RepaymentRecord,
)
from loan_ledger.domain.values import MoneyAmount

__all__ = [
    "AggregateStatistics",
    "Clock",
    "DeterministicClock",
    "LoanBalance",
    "LoanFilter",
    "LoanRecord",
    "MoneyAmount",
    "RepaymentFilter",
    "RepaymentRecord",
    "SystemClock",
]
