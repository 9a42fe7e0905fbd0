"""
LedgerEngine -- Atomic, validated mutations of loans and repayments.

Responsibility:
    Owns every write to the ledger: issuing, editing, re-statusing and
    deleting loans; recording, editing and deleting repayments.  Computes
    the balance of a loan from its repayments inside the same transaction
    that validates a change against it.

Architecture position:
    Ledger > Services -- imperative shell.  Depends on the LedgerStore
    interface, the domain records and the Clock.  Never touches a Session.

Invariants enforced:
    - 0 <= total_repaid <= principal for every loan, after every commit.
    - A loan and its repayments are read, validated and written in one
      transaction that holds the loan lock (first committer wins).
    - Every mutation of a loan group bumps the loan version, so a writer
      working from an older read fails its version check and is retried
      against fresh state.
    - Deleting a repayment restores exactly its contribution to the
      balance; deleting a loan removes its repayments all-or-nothing.

Failure modes:
    - LoanNotFoundError / RepaymentNotFoundError for unknown identifiers.
    - InvalidAmountError, InvalidDateError, InvalidReasonError,
      InvalidStatusError for malformed input.
    - OverpaymentRejectedError, BalanceViolationError, LoanInactiveError,
      LoanHasDependentsError when a change would break the ledger rules.
    - RetryableError when transient conflicts outlast the retry budget.
    On every failure the transaction is rolled back: nothing changes.

Usage:
    engine = LedgerEngine(store, clock=SystemClock(), settings=settings)
    loan = engine.issue_loan(42, "1000.00", date(2024, 6, 1), "Relocation")
    repayment = engine.record_repayment(loan.id, "250.00", date(2024, 6, 30))
    assert repayment.remaining_balance == MoneyAmount.of("750.00")
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

from loan_ledger.config import LedgerSettings
from loan_ledger.domain.clock import Clock, SystemClock
from loan_ledger.domain.dtos import LoanBalance, LoanRecord, RepaymentRecord
from loan_ledger.domain.parsing import parse_loan_id, parse_repayment_id, parse_status
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import (
    BalanceViolationError,
    InvalidAmountError,
    InvalidDateError,
    InvalidReasonError,
    LoanHasDependentsError,
    LoanInactiveError,
    LoanLedgerError,
    LoanNotFoundError,
    OverpaymentRejectedError,
    RepaymentNotFoundError,
    RetryableError,
)
from loan_ledger.logging_config import LogContext, get_logger
from loan_ledger.models.loan import LoanStatus
from loan_ledger.store.base import LedgerStore

logger = get_logger("services.ledger_engine")

T = TypeVar("T")


# Call arguments copied onto the log context when present
_CONTEXT_ARGUMENTS = ("loan_id", "repayment_id", "actor_id")


def _ledger_operation(func: Callable[..., T]) -> Callable[..., T]:
    """
    Tag log lines with the operation name and the ids it targets, and log
    rejections at WARNING.
    """
    signature = inspect.signature(func)

    @functools.wraps(func)
    def wrapper(self: LedgerEngine, *args: Any, **kwargs: Any) -> T:
        try:
            arguments = signature.bind_partial(self, *args, **kwargs).arguments
        except TypeError:
            # Let the call itself raise the signature error
            arguments = {}
        context = {name: arguments.get(name) for name in _CONTEXT_ARGUMENTS}
        with LogContext.bind(operation=func.__name__, **context):
            try:
                return func(self, *args, **kwargs)
            except LoanLedgerError as exc:
                logger.warning(
                    "ledger_operation_rejected",
                    extra={"error_code": exc.code, **exc.context()},
                )
                raise

    return wrapper


class LedgerEngine:
    """
    Transactional engine for the loan ledger.

    Contract:
        Each public method is one atomic transaction against ``store``.
        A transaction that fails on a transient conflict (stale version,
        lock timeout, deadlock, serialization failure) is rolled back and
        the whole method body is run again, up to
        ``settings.conflict_retries`` extra attempts.

    Guarantees:
        - Validation always sees the committed state of the whole loan
          group as of the moment the loan lock was taken.
        - Returned records are the stored versions.

    Non-goals:
        - Does NOT serve listings or statistics (see QueryService).
        - Does NOT authenticate callers; ``actor_id`` is recorded as given.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    @_ledger_operation
    def issue_loan(
        self,
        employee_id: int,
        principal: MoneyAmount | str | int,
        issue_date: date,
        reason: str,
        actor_id: str | None = None,
    ) -> LoanRecord:
        """
        Issue a new ACTIVE loan.

        Raises:
            InvalidAmountError: principal is not a positive amount.
            InvalidDateError: issue_date is not a date or lies in the future.
            InvalidReasonError: reason is empty.
        """
        amount = self._positive_amount(principal)
        issued_on = self._past_or_today(issue_date)
        reason_text = self._reason(reason)
        record = LoanRecord(
            id=uuid4(),
            employee_id=employee_id,
            principal=amount,
            issue_date=issued_on,
            reason=reason_text,
            status=LoanStatus.ACTIVE,
            created_by=actor_id,
            updated_by=actor_id,
        )

        def work(tx: Any) -> LoanRecord:
            return self._store.put_loan(tx, record)

        loan = self._run("issue_loan", work)
        logger.info(
            "loan_issued",
            extra={
                "loan_id": loan.id,
                "employee_id": loan.employee_id,
                "actor_id": actor_id,
                "principal": str(loan.principal),
                "issue_date": loan.issue_date,
            },
        )
        return loan

    @_ledger_operation
    def edit_loan(
        self,
        loan_id: UUID | str,
        principal: MoneyAmount | str | int | None = None,
        reason: str | None = None,
        issue_date: date | None = None,
        actor_id: str | None = None,
    ) -> LoanRecord:
        """
        Change a loan's principal, reason or issue date.

        The new principal may not drop below what has already been repaid.

        Raises:
            LoanNotFoundError, BalanceViolationError, InvalidAmountError,
            InvalidDateError, InvalidReasonError.
        """
        lid = parse_loan_id(loan_id)
        changes: dict[str, Any] = {}
        if principal is not None:
            changes["principal"] = self._positive_amount(principal)
        if reason is not None:
            changes["reason"] = self._reason(reason)
        if issue_date is not None:
            changes["issue_date"] = self._past_or_today(issue_date)

        def work(tx: Any) -> LoanRecord:
            loan = self._lock_loan(tx, lid)
            if not changes:
                return loan
            balance = self._balance(tx, loan)
            new_principal = changes.get("principal", loan.principal)
            if new_principal < balance.total_repaid:
                raise BalanceViolationError(loan.id, new_principal, balance.total_repaid)
            return self._store.put_loan(
                tx, replace(loan, **changes, updated_by=actor_id or loan.updated_by)
            )

        loan = self._run("edit_loan", work)
        if changes:
            logger.info(
                "loan_edited",
                extra={
                    "loan_id": loan.id,
                    "actor_id": actor_id,
                    "fields": sorted(changes),
                    "principal": str(loan.principal),
                    "version": loan.version,
                },
            )
        return loan

    @_ledger_operation
    def set_loan_status(
        self,
        loan_id: UUID | str,
        status: LoanStatus | str,
        actor_id: str | None = None,
    ) -> LoanRecord:
        """
        Flip a loan between ACTIVE and INACTIVE.

        No balance check: inactivation hides a loan from "active"
        projections but does not forgive what is still owed.

        Raises:
            LoanNotFoundError, InvalidStatusError.
        """
        lid = parse_loan_id(loan_id)
        new_status = parse_status(status)
        previous: list[LoanStatus] = []

        def work(tx: Any) -> LoanRecord:
            loan = self._lock_loan(tx, lid)
            previous[:] = [loan.status]
            if loan.status == new_status:
                return loan
            return self._store.put_loan(
                tx,
                replace(loan, status=new_status, updated_by=actor_id or loan.updated_by),
            )

        loan = self._run("set_loan_status", work)
        if previous and previous[0] != new_status:
            logger.info(
                "loan_status_changed",
                extra={
                    "loan_id": loan.id,
                    "actor_id": actor_id,
                    "from_status": previous[0].value,
                    "to_status": new_status.value,
                },
            )
        return loan

    @_ledger_operation
    def delete_loan(
        self,
        loan_id: UUID | str,
        cascade: bool = False,
        actor_id: str | None = None,
    ) -> None:
        """
        Delete a loan.

        Without ``cascade`` a loan that has repayments is refused.  With
        it, the loan and all its repayments are removed in one
        transaction: either all disappear or none does.

        Raises:
            LoanNotFoundError, LoanHasDependentsError.
        """
        lid = parse_loan_id(loan_id)

        def work(tx: Any) -> int:
            loan = self._lock_loan(tx, lid)
            repayments = self._store.get_repayments_for_loan(tx, loan.id)
            if repayments and not cascade:
                raise LoanHasDependentsError(loan.id, len(repayments))
            for repayment in repayments:
                self._store.delete_repayment(tx, repayment.id)
            self._store.delete_loan(tx, loan.id)
            return len(repayments)

        removed = self._run("delete_loan", work)
        logger.info(
            "loan_deleted",
            extra={
                "loan_id": lid,
                "actor_id": actor_id,
                "cascade": cascade,
                "repayments_deleted": removed,
            },
        )

    # ------------------------------------------------------------------
    # Repayments
    # ------------------------------------------------------------------

    @_ledger_operation
    def record_repayment(
        self,
        loan_id: UUID | str,
        amount: MoneyAmount | str | int,
        repay_date: date,
        actor_id: str | None = None,
    ) -> RepaymentRecord:
        """
        Apply a repayment to an active loan.

        ``amount`` may equal the remaining balance exactly; one minor unit
        more is rejected.  The returned record carries the remaining
        balance after this repayment.

        Raises:
            LoanNotFoundError, LoanInactiveError, InvalidAmountError,
            InvalidDateError, OverpaymentRejectedError.
        """
        lid = parse_loan_id(loan_id)

        def work(tx: Any) -> RepaymentRecord:
            loan = self._lock_loan(tx, lid)
            if not loan.is_active:
                raise LoanInactiveError(loan.id)
            paid = self._positive_amount(amount)
            paid_on = self._past_or_today(repay_date)
            balance = self._balance(tx, loan)
            if paid > balance.remaining:
                raise OverpaymentRejectedError(loan.id, paid, balance.remaining)

            stored = self._store.put_repayment(
                tx,
                RepaymentRecord(
                    id=uuid4(),
                    loan_id=loan.id,
                    employee_id=loan.employee_id,
                    amount=paid,
                    repay_date=paid_on,
                    created_by=actor_id,
                    updated_by=actor_id,
                ),
            )
            remaining = balance.remaining - paid
            self._touch_loan(tx, loan, remaining, actor_id)
            return replace(stored, remaining_balance=remaining)

        repayment = self._run("record_repayment", work)
        logger.info(
            "repayment_recorded",
            extra={
                "loan_id": repayment.loan_id,
                "actor_id": actor_id,
                "repayment_id": repayment.id,
                "amount": str(repayment.amount),
                "remaining": str(repayment.remaining_balance),
            },
        )
        return repayment

    @_ledger_operation
    def edit_repayment(
        self,
        repayment_id: UUID | str,
        amount: MoneyAmount | str | int | None = None,
        repay_date: date | None = None,
        actor_id: str | None = None,
    ) -> RepaymentRecord:
        """
        Change a repayment's amount or date.

        The loan's other repayments plus the new amount may not exceed the
        principal.  On rejection the reported remaining balance excludes
        this repayment, i.e. it is the largest amount it could be set to.

        Raises:
            RepaymentNotFoundError, InvalidAmountError, InvalidDateError,
            OverpaymentRejectedError.
        """
        rid = parse_repayment_id(repayment_id)
        new_amount = self._positive_amount(amount) if amount is not None else None
        new_date = self._past_or_today(repay_date) if repay_date is not None else None

        def work(tx: Any) -> RepaymentRecord:
            loan, current, repayments = self._lock_repayment_group(tx, rid)
            others = MoneyAmount.total(r.amount for r in repayments if r.id != rid)
            headroom = loan.principal - others
            target = new_amount if new_amount is not None else current.amount
            if target > headroom:
                raise OverpaymentRejectedError(loan.id, target, headroom)
            if new_amount is None and new_date is None:
                return replace(current, remaining_balance=headroom - current.amount)

            stored = self._store.put_repayment(
                tx,
                replace(
                    current,
                    amount=target,
                    repay_date=new_date or current.repay_date,
                    updated_by=actor_id or current.updated_by,
                ),
            )
            remaining = headroom - target
            self._touch_loan(tx, loan, remaining, actor_id)
            return replace(stored, remaining_balance=remaining)

        repayment = self._run("edit_repayment", work)
        logger.info(
            "repayment_edited",
            extra={
                "loan_id": repayment.loan_id,
                "actor_id": actor_id,
                "repayment_id": repayment.id,
                "amount": str(repayment.amount),
                "remaining": str(repayment.remaining_balance),
            },
        )
        return repayment

    @_ledger_operation
    def delete_repayment(
        self,
        repayment_id: UUID | str,
        actor_id: str | None = None,
    ) -> None:
        """
        Remove a repayment, restoring exactly its amount to the balance.

        Raises:
            RepaymentNotFoundError.
        """
        rid = parse_repayment_id(repayment_id)

        def work(tx: Any) -> tuple[RepaymentRecord, MoneyAmount]:
            loan, current, repayments = self._lock_repayment_group(tx, rid)
            self._store.delete_repayment(tx, rid)
            repaid = MoneyAmount.total(r.amount for r in repayments if r.id != rid)
            remaining = loan.principal - repaid
            self._touch_loan(tx, loan, remaining, actor_id)
            return current, remaining

        removed, remaining = self._run("delete_repayment", work)
        logger.info(
            "repayment_deleted",
            extra={
                "loan_id": removed.loan_id,
                "actor_id": actor_id,
                "repayment_id": removed.id,
                "amount": str(removed.amount),
                "remaining": str(remaining),
            },
        )

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    @_ledger_operation
    def get_balance(self, loan_id: UUID | str) -> LoanBalance:
        """
        Balance of a loan read under the loan lock.

        Use this, not the query path, when the number drives a decision.

        Raises:
            LoanNotFoundError.
        """
        lid = parse_loan_id(loan_id)

        def work(tx: Any) -> LoanBalance:
            return self._balance(tx, self._lock_loan(tx, lid))

        return self._run("get_balance", work)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, operation: str, work: Callable[[Any], T]) -> T:
        """Run ``work`` in a transaction, retrying transient conflicts."""
        attempts = self._settings.conflict_retries + 1
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            try:
                with self._store.transaction() as tx:
                    return work(tx)
            except Exception as exc:
                if not self._store.is_transient_error(exc):
                    raise
                last_error = exc
                logger.warning(
                    "ledger_conflict_retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "cause": type(exc).__name__,
                    },
                )
                if attempt < attempts:
                    time.sleep(self._settings.retry_backoff_seconds * attempt)

        raise RetryableError(operation, attempts, cause=str(last_error)) from last_error

    def _lock_loan(self, tx: Any, loan_id: UUID) -> LoanRecord:
        loan = self._store.get_loan(tx, loan_id, for_update=True)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def _lock_repayment_group(
        self, tx: Any, repayment_id: UUID
    ) -> tuple[LoanRecord, RepaymentRecord, list[RepaymentRecord]]:
        """Lock the loan owning ``repayment_id`` and re-read its repayments."""
        found = self._store.get_repayment(tx, repayment_id)
        if found is None:
            raise RepaymentNotFoundError(repayment_id)
        loan = self._store.get_loan(tx, found.loan_id, for_update=True)
        repayments = (
            self._store.get_repayments_for_loan(tx, loan.id) if loan is not None else []
        )
        current = next((r for r in repayments if r.id == repayment_id), None)
        if loan is None or current is None:
            # Removed between the unlocked lookup and taking the lock
            raise RepaymentNotFoundError(repayment_id)
        return loan, current, repayments

    def _balance(self, tx: Any, loan: LoanRecord) -> LoanBalance:
        return LoanBalance.compute(loan, self._store.get_repayments_for_loan(tx, loan.id))

    def _touch_loan(
        self,
        tx: Any,
        loan: LoanRecord,
        remaining: MoneyAmount,
        actor_id: str | None,
    ) -> LoanRecord:
        """Bump the group version after a repayment change, syncing status if enabled."""
        status = loan.status
        if self._settings.sync_status_with_balance:
            status = LoanStatus.INACTIVE if remaining.is_zero else LoanStatus.ACTIVE
            if status != loan.status:
                logger.info(
                    "loan_status_synced",
                    extra={
                        "loan_id": loan.id,
                        "from_status": loan.status.value,
                        "to_status": status.value,
                        "remaining": str(remaining),
                    },
                )
        return self._store.put_loan(
            tx, replace(loan, status=status, updated_by=actor_id or loan.updated_by)
        )

    def _positive_amount(self, value: Any) -> MoneyAmount:
        amount = MoneyAmount.of(value)
        if not amount.is_positive:
            raise InvalidAmountError(value, "must be greater than zero")
        if not amount.is_storable:
            raise InvalidAmountError(value, "exceeds the largest storable amount")
        return amount

    def _past_or_today(self, value: Any) -> date:
        if isinstance(value, datetime) or not isinstance(value, date):
            raise InvalidDateError(value, "expected a calendar date")
        today = self._clock.today()
        if value > today:
            raise InvalidDateError(value, "must not be in the future", today=today)
        return value

    def _reason(self, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidReasonError(value)
        return value.strip()
