"""
Typed Exception Hierarchy for the Loan Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The calling layer (REST handler, RPC adapter, admin CLI) must decide how to
present every failure.  It cannot do that reliably by parsing messages, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (loan id, remaining balance, ...)

Example:
    try:
        engine.record_repayment(loan_id, amount, repay_date)
    except OverpaymentRejectedError as e:
        show(f"Only {e.remaining} left to repay")    # Structured data
        respond(code=e.code, remaining=str(e.remaining))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LoanLedgerError (base)
    |
    +-- LedgerNotFoundError
    |   +-- LoanNotFoundError
    |   +-- RepaymentNotFoundError
    |
    +-- LedgerValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidDateError
    |   +-- InvalidReasonError
    |   +-- InvalidStatusError
    |
    +-- LedgerRuleError
    |   +-- OverpaymentRejectedError
    |   +-- BalanceViolationError
    |   +-- LoanInactiveError
    |   +-- LoanHasDependentsError
    |
    +-- ConcurrencyError
        +-- StaleRecordError
        +-- RetryableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                  | When Raised
-------------|-----------------------|---------------------------------------------
Not found    | LOAN_NOT_FOUND        | Loan id doesn't exist (or is malformed)
             | REPAYMENT_NOT_FOUND   | Repayment id doesn't exist
-------------|-----------------------|---------------------------------------------
Validation   | INVALID_AMOUNT        | Non-positive, negative or malformed money
             | INVALID_DATE          | Future-dated or malformed calendar date
             | INVALID_REASON        | Empty loan reason
             | INVALID_STATUS        | Status other than active/inactive
-------------|-----------------------|---------------------------------------------
Ledger rule  | OVERPAYMENT_REJECTED  | Repayment would exceed remaining balance
             | BALANCE_VIOLATION     | Principal edited below total repaid
             | LOAN_INACTIVE         | Repayment against an inactive loan
             | LOAN_HAS_DEPENDENTS   | Non-cascading delete with repayments
-------------|-----------------------|---------------------------------------------
Concurrency  | STALE_RECORD          | Loan version changed underneath a write
             | RETRYABLE             | Contention persisted; nothing was changed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception, not ValueError: domain failures must be catchable
   as a group without also catching programming errors.

2. ``code`` is a class attribute: ``OverpaymentRejectedError.code`` is usable
   without an instance (API docs, status mapping).

3. Categories map to caller behaviour:
   - LedgerNotFoundError     -> "does not exist"
   - LedgerValidationError   -> "fix your input"
   - LedgerRuleError         -> "the ledger forbids this"
   - RetryableError          -> "resubmit the identical request"

===============================================================================
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loan_ledger.domain.values import MoneyAmount


class LoanLedgerError(Exception):
    """
    Base exception for all loan ledger errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "LOAN_LEDGER_ERROR"

    def context(self) -> dict[str, Any]:
        """Structured attributes for logs and API payloads."""
        return {
            k: v for k, v in vars(self).items() if not k.startswith("_")
        }


# Not-found exceptions


class LedgerNotFoundError(LoanLedgerError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class LoanNotFoundError(LedgerNotFoundError):
    """Loan with given ID was not found."""

    code: str = "LOAN_NOT_FOUND"

    def __init__(self, loan_id: str):
        self.loan_id = str(loan_id)
        super().__init__(f"Loan not found: {loan_id}")


class RepaymentNotFoundError(LedgerNotFoundError):
    """Repayment with given ID was not found."""

    code: str = "REPAYMENT_NOT_FOUND"

    def __init__(self, repayment_id: str):
        self.repayment_id = str(repayment_id)
        super().__init__(f"Repayment not found: {repayment_id}")


# Validation exceptions


class LedgerValidationError(LoanLedgerError):
    """Base exception for malformed or out-of-range caller input."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(LedgerValidationError):
    """Money value is malformed, negative, or not positive where required."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: Any, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class InvalidDateError(LedgerValidationError):
    """Calendar date is malformed or lies in the future."""

    code: str = "INVALID_DATE"

    def __init__(self, value: Any, reason: str, today: date | None = None):
        self.value = str(value)
        self.reason = reason
        self.today = today.isoformat() if today else None
        super().__init__(f"Invalid date {value!r}: {reason}")


class InvalidReasonError(LedgerValidationError):
    """Loan reason is missing or blank."""

    code: str = "INVALID_REASON"

    def __init__(self, value: Any):
        self.value = value
        super().__init__("Loan reason must not be empty")


class InvalidStatusError(LedgerValidationError):
    """Loan status is not one of the known values."""

    code: str = "INVALID_STATUS"

    def __init__(self, value: Any):
        self.value = str(value)
        super().__init__(
            f"Status must be either 'active' or 'inactive', got {value!r}"
        )


# Ledger rule exceptions


class LedgerRuleError(LoanLedgerError):
    """Base exception for operations the ledger invariants forbid."""

    code: str = "LEDGER_RULE_VIOLATION"


class OverpaymentRejectedError(LedgerRuleError):
    """
    Repayment would push total repaid above the loan principal.

    Always carries the remaining balance so the caller can show the
    maximum allowed amount.
    """

    code: str = "OVERPAYMENT_REJECTED"

    def __init__(
        self,
        loan_id: str,
        attempted: MoneyAmount,
        remaining: MoneyAmount,
    ):
        self.loan_id = str(loan_id)
        self.attempted = attempted
        self.remaining = remaining
        super().__init__(
            f"Repayment of {attempted} would exceed loan {loan_id}. "
            f"Maximum allowed: {remaining}"
        )


class BalanceViolationError(LedgerRuleError):
    """Loan principal edited below what has already been repaid."""

    code: str = "BALANCE_VIOLATION"

    def __init__(
        self,
        loan_id: str,
        requested_principal: MoneyAmount,
        total_repaid: MoneyAmount,
    ):
        self.loan_id = str(loan_id)
        self.requested_principal = requested_principal
        self.total_repaid = total_repaid
        super().__init__(
            f"Principal {requested_principal} for loan {loan_id} is below "
            f"the {total_repaid} already repaid"
        )


class LoanInactiveError(LedgerRuleError):
    """Repayment attempted against a loan that is not active."""

    code: str = "LOAN_INACTIVE"

    def __init__(self, loan_id: str):
        self.loan_id = str(loan_id)
        super().__init__(f"Cannot repay an inactive loan: {loan_id}")


class LoanHasDependentsError(LedgerRuleError):
    """Non-cascading delete blocked by existing repayments."""

    code: str = "LOAN_HAS_DEPENDENTS"

    def __init__(self, loan_id: str, repayment_count: int):
        self.loan_id = str(loan_id)
        self.repayment_count = repayment_count
        super().__init__(
            f"Loan {loan_id} has {repayment_count} repayment(s); "
            "delete with cascade to remove them"
        )


# Concurrency exceptions


class ConcurrencyError(LoanLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleRecordError(ConcurrencyError):
    """Optimistic version check failed: the loan group changed underneath."""

    code: str = "STALE_RECORD"

    def __init__(self, entity_type: str, entity_id: str, expected: int, actual: int | None):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stale {entity_type} {entity_id}: expected version {expected}, "
            f"found {actual}"
        )


class RetryableError(ConcurrencyError):
    """
    Transient contention outlasted the retry budget.

    No state was changed; the caller may resubmit the identical request.
    """

    code: str = "RETRYABLE"

    def __init__(self, operation: str, attempts: int, cause: str | None = None):
        self.operation = operation
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{operation} could not commit after {attempts} attempt(s); "
            "no changes were made, retry the request"
        )
