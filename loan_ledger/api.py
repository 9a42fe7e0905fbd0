"""
LedgerApi -- Primitive-in, JSON-out facade for a calling layer.

Responsibility:
    Lets a request handler (web, RPC, CLI) drive the engine and the query
    service with plain values: integer employee ids, UUID strings, amounts
    as decimal strings or integer minor units, ISO-8601 date strings.
    Returns JSON-serialisable dicts and maps ledger errors to HTTP-style
    status codes and payloads.

Architecture position:
    Ledger > outermost layer.  Imports services/ and selectors/.  No web
    framework dependency.

Failure modes:
    - Malformed inputs raise the same typed errors as the engine:
      InvalidAmountError, InvalidDateError, LoanNotFoundError /
      RepaymentNotFoundError for ids that are not UUIDs.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
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
from loan_ledger.exceptions import (
    BalanceViolationError,
    InvalidAmountError,
    InvalidDateError,
    LedgerNotFoundError,
    LedgerValidationError,
    LoanHasDependentsError,
    LoanInactiveError,
    LoanLedgerError,
    OverpaymentRejectedError,
    RetryableError,
)
from loan_ledger.selectors.query_service import QueryService
from loan_ledger.services.ledger_engine import LedgerEngine

# Most specific first
_STATUS_BY_ERROR: tuple[tuple[type[BaseException], int], ...] = (
    (LedgerNotFoundError, 404),
    (LedgerValidationError, 422),
    (OverpaymentRejectedError, 422),
    (BalanceViolationError, 422),
    (LoanInactiveError, 409),
    (LoanHasDependentsError, 409),
    (RetryableError, 503),
)


def http_status_for(error: BaseException) -> int:
    """HTTP status code a calling layer should answer ``error`` with."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def error_payload(error: BaseException) -> dict[str, Any]:
    """Render ``error`` as ``{"code", "message", **structured attributes}``."""
    if isinstance(error, LoanLedgerError):
        payload = {k: _jsonable(v) for k, v in error.context().items()}
        payload.update(code=error.code, message=str(error))
        return payload
    return {"code": "INTERNAL_ERROR", "message": "Internal error"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (MoneyAmount, UUID, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


def parse_amount(value: Any) -> MoneyAmount:
    """
    Decimal text is major units ("12.50"); an int is minor units (1250).

    Raises:
        InvalidAmountError: Anything else, or a malformed/negative amount.
    """
    if isinstance(value, MoneyAmount):
        return value
    if isinstance(value, bool):
        raise InvalidAmountError(value, "booleans are not amounts")
    if isinstance(value, int):
        return MoneyAmount.from_minor_units(value)
    if isinstance(value, str):
        return MoneyAmount.of(value)
    raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")


def parse_date(value: Any) -> date:
    """
    Accept an ISO-8601 calendar date string (or a date).

    Raises:
        InvalidDateError: The value is not a valid calendar date.
    """
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(value, "expected an ISO-8601 date string")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidDateError(value, "not a valid ISO-8601 date") from e


def loan_to_dict(loan: LoanRecord) -> dict[str, Any]:
    return {
        "id": str(loan.id),
        "employee_id": loan.employee_id,
        "principal": str(loan.principal),
        "issue_date": loan.issue_date.isoformat(),
        "reason": loan.reason,
        "status": loan.status.value,
        "version": loan.version,
        "created_by": loan.created_by,
        "updated_by": loan.updated_by,
    }


def repayment_to_dict(repayment: RepaymentRecord) -> dict[str, Any]:
    result = {
        "id": str(repayment.id),
        "loan_id": str(repayment.loan_id),
        "employee_id": repayment.employee_id,
        "amount": str(repayment.amount),
        "repay_date": repayment.repay_date.isoformat(),
        "created_by": repayment.created_by,
        "updated_by": repayment.updated_by,
    }
    if repayment.remaining_balance is not None:
        result["remaining_balance"] = str(repayment.remaining_balance)
    return result


def balance_to_dict(balance: LoanBalance) -> dict[str, Any]:
    return {
        "loan_id": str(balance.loan_id),
        "employee_id": balance.employee_id,
        "principal": str(balance.principal),
        "total_repaid": str(balance.total_repaid),
        "remaining": str(balance.remaining),
        "repayment_percentage": balance.repayment_percentage,
        "repayment_count": balance.repayment_count,
        "status": balance.status.value,
        "is_settled": balance.is_settled,
    }


def statistics_to_dict(stats: AggregateStatistics) -> dict[str, Any]:
    return {
        "total_loans": str(stats.total_loans),
        "total_repaid": str(stats.total_repaid),
        "total_outstanding": str(stats.total_outstanding),
        "loan_count": stats.loan_count,
        "repayment_count": stats.repayment_count,
        "active_loan_count": stats.active_loan_count,
    }


def _optional(parser, value: Any) -> Any:
    return parser(value) if value is not None else None


class LedgerApi:
    """
    Facade over LedgerEngine and QueryService for request handlers.

    Every method either returns a JSON-serialisable value or raises a
    LoanLedgerError; handlers answer with ``http_status_for(error)`` and
    ``error_payload(error)``.
    """

    def __init__(self, engine: LedgerEngine, queries: QueryService):
        self._engine = engine
        self._queries = queries

    # Loans

    def issue_loan(
        self,
        employee_id: int,
        principal: str | int,
        issue_date: str,
        reason: str,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        loan = self._engine.issue_loan(
            employee_id,
            parse_amount(principal),
            parse_date(issue_date),
            reason,
            actor_id=actor_id,
        )
        return loan_to_dict(loan)

    def edit_loan(
        self,
        loan_id: str,
        principal: str | int | None = None,
        reason: str | None = None,
        issue_date: str | None = None,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        loan = self._engine.edit_loan(
            loan_id,
            principal=_optional(parse_amount, principal),
            reason=reason,
            issue_date=_optional(parse_date, issue_date),
            actor_id=actor_id,
        )
        return loan_to_dict(loan)

    def set_loan_status(
        self, loan_id: str, status: str, actor_id: str | None = None
    ) -> dict[str, Any]:
        return loan_to_dict(self._engine.set_loan_status(loan_id, status, actor_id=actor_id))

    def delete_loan(
        self, loan_id: str, cascade: bool = False, actor_id: str | None = None
    ) -> dict[str, Any]:
        self._engine.delete_loan(loan_id, cascade=cascade, actor_id=actor_id)
        return {"loan_id": str(parse_loan_id(loan_id)), "deleted": True}

    def get_loan(self, loan_id: str) -> dict[str, Any]:
        return loan_to_dict(self._queries.get_loan(loan_id))

    def list_loans(
        self,
        employee_id: int | None = None,
        status: str | None = None,
        issued_from: str | None = None,
        issued_to: str | None = None,
        min_principal: str | int | None = None,
    ) -> list[dict[str, Any]]:
        criteria = LoanFilter(
            employee_id=employee_id,
            status=_optional(parse_status, status),
            issued_from=_optional(parse_date, issued_from),
            issued_to=_optional(parse_date, issued_to),
            min_principal=_optional(parse_amount, min_principal),
        )
        return [loan_to_dict(loan) for loan in self._queries.list_loans(criteria)]

    def active_loans_for_employee(self, employee_id: int) -> list[dict[str, Any]]:
        return [
            loan_to_dict(loan)
            for loan in self._queries.active_loans_for_employee(employee_id)
        ]

    def get_balance(self, loan_id: str) -> dict[str, Any]:
        return balance_to_dict(self._engine.get_balance(loan_id))

    def loans_with_balances(
        self, employee_id: int | None = None, status: str | None = None
    ) -> list[dict[str, Any]]:
        return [
            balance_to_dict(balance)
            for balance in self._queries.loans_with_balances(employee_id, status)
        ]

    # Repayments

    def record_repayment(
        self,
        loan_id: str,
        amount: str | int,
        repay_date: str,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        repayment = self._engine.record_repayment(
            loan_id, parse_amount(amount), parse_date(repay_date), actor_id=actor_id
        )
        return repayment_to_dict(repayment)

    def edit_repayment(
        self,
        repayment_id: str,
        amount: str | int | None = None,
        repay_date: str | None = None,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        repayment = self._engine.edit_repayment(
            repayment_id,
            amount=_optional(parse_amount, amount),
            repay_date=_optional(parse_date, repay_date),
            actor_id=actor_id,
        )
        return repayment_to_dict(repayment)

    def delete_repayment(
        self, repayment_id: str, actor_id: str | None = None
    ) -> dict[str, Any]:
        self._engine.delete_repayment(repayment_id, actor_id=actor_id)
        return {"repayment_id": str(parse_repayment_id(repayment_id)), "deleted": True}

    def get_repayment(self, repayment_id: str) -> dict[str, Any]:
        return repayment_to_dict(self._queries.get_repayment(repayment_id))

    def repayment_history(self, loan_id: str) -> list[dict[str, Any]]:
        return [repayment_to_dict(r) for r in self._queries.repayment_history(loan_id)]

    def list_repayments(
        self,
        loan_id: str | None = None,
        employee_id: int | None = None,
        repaid_from: str | None = None,
        repaid_to: str | None = None,
    ) -> list[dict[str, Any]]:
        criteria = RepaymentFilter(
            loan_id=_optional(parse_loan_id, loan_id),
            employee_id=employee_id,
            repaid_from=_optional(parse_date, repaid_from),
            repaid_to=_optional(parse_date, repaid_to),
        )
        return [repayment_to_dict(r) for r in self._queries.list_repayments(criteria)]

    # Totals

    def total_outstanding_for_employee(self, employee_id: int) -> dict[str, Any]:
        total = self._queries.total_outstanding_for_employee(employee_id)
        return {"employee_id": employee_id, "total_outstanding": str(total)}

    def aggregate_statistics(self) -> dict[str, Any]:
        return statistics_to_dict(self._queries.aggregate_statistics())
