"""
SqlLedgerStore -- LedgerStore over SQLAlchemy sessions.

Responsibility:
    Maps Loan/Repayment ORM rows to and from the domain records and runs
    each ledger transaction in its own Session.

Architecture position:
    Ledger > Store.  Imports models/ and db/.  The only module outside db/
    that touches a Session.

Invariants enforced:
    - A write transaction takes its lock when it begins (BEGIN IMMEDIATE on
      SQLite); on PostgreSQL get_loan(for_update=True) issues
      SELECT ... FOR UPDATE on the loan row.
    - put_loan checks the version in memory and again in SQL: the UPDATE
      carries ``WHERE version = :old`` (version_id_col), so a concurrent
      writer surfaces as StaleRecordError, never as a lost update.
    - No ORM instance escapes this module.

Failure modes:
    - StaleRecordError on optimistic version mismatch.
    - sqlalchemy OperationalError on lock timeout, deadlock or
      serialization failure; ``is_transient_error`` reports these as
      retryable.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import BigInteger, delete, func, select, type_coerce
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from loan_ledger.db.engine import READ_ONLY_OPTION
from loan_ledger.domain.dtos import (
    LoanFilter,
    LoanRecord,
    RepaymentFilter,
    RepaymentRecord,
)
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import StaleRecordError
from loan_ledger.logging_config import get_logger
from loan_ledger.models.loan import Loan, LoanStatus
from loan_ledger.models.repayment import Repayment
from loan_ledger.store.base import LedgerStore, RepaidTotal

logger = get_logger("store.sql")

# Substrings of driver messages for conflicts a fresh attempt can resolve
_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "could not serialize access",
    "deadlock detected",
    "lock timeout",
    "canceling statement due to lock timeout",
)

# SQLSTATE: serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _loan_to_record(row: Loan) -> LoanRecord:
    return LoanRecord(
        id=row.id,
        employee_id=row.employee_id,
        principal=row.principal,
        issue_date=row.issue_date,
        reason=row.reason,
        status=LoanStatus(row.status),
        version=row.version,
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


def _repayment_to_record(row: Repayment) -> RepaymentRecord:
    return RepaymentRecord(
        id=row.id,
        loan_id=row.loan_id,
        employee_id=row.employee_id,
        amount=row.amount,
        repay_date=row.repay_date,
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


class SqlLedgerStore(LedgerStore):
    """
    LedgerStore backed by a relational database.

    Transaction handles are SQLAlchemy Sessions created from
    ``session_factory`` (see db.engine.get_session_factory).
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # Unit of work

    def begin_transaction(self, read_only: bool = False) -> Session:
        session = self._session_factory()
        try:
            if read_only:
                session.connection(execution_options={READ_ONLY_OPTION: True})
            else:
                # Begin now so the write lock is held before the first read
                session.connection()
        except Exception:
            session.close()
            raise
        return session

    def commit(self, tx: Session) -> None:
        try:
            tx.commit()
        finally:
            tx.close()

    def rollback(self, tx: Session) -> None:
        try:
            tx.rollback()
        finally:
            tx.close()

    def is_transient_error(self, exc: BaseException) -> bool:
        if super().is_transient_error(exc) or isinstance(exc, StaleDataError):
            return True
        if isinstance(exc, OperationalError):
            sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
            if sqlstate in _TRANSIENT_SQLSTATES:
                return True
            message = str(exc.orig).lower()
            return any(marker in message for marker in _TRANSIENT_MARKERS)
        return False

    # Loans

    def get_loan(
        self, tx: Session, loan_id: UUID, for_update: bool = False
    ) -> LoanRecord | None:
        stmt = select(Loan).where(Loan.id == loan_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = tx.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _loan_to_record(row) if row is not None else None

    def put_loan(self, tx: Session, record: LoanRecord) -> LoanRecord:
        row = tx.get(Loan, record.id)
        if row is None:
            row = Loan(
                id=record.id,
                employee_id=record.employee_id,
                principal=record.principal,
                issue_date=record.issue_date,
                reason=record.reason,
                status=record.status.value,
                version=1,
                created_by=record.created_by,
                updated_by=record.updated_by,
            )
            tx.add(row)
        else:
            if row.version != record.version:
                logger.debug(
                    "stale_loan_version",
                    extra={"loan_id": record.id, "expected": record.version, "actual": row.version},
                )
                raise StaleRecordError("Loan", record.id, record.version, row.version)
            row.employee_id = record.employee_id
            row.principal = record.principal
            row.issue_date = record.issue_date
            row.reason = record.reason
            row.status = record.status.value
            row.updated_by = record.updated_by
            row.version = record.version + 1
        try:
            tx.flush()
        except StaleDataError as exc:
            raise StaleRecordError("Loan", record.id, record.version, None) from exc
        return _loan_to_record(row)

    def delete_loan(self, tx: Session, loan_id: UUID) -> None:
        row = tx.get(Loan, loan_id)
        if row is None:
            return
        tx.delete(row)
        try:
            tx.flush()
        except StaleDataError as exc:
            raise StaleRecordError("Loan", loan_id, row.version, None) from exc

    def list_loans(self, tx: Session, criteria: LoanFilter | None = None) -> list[LoanRecord]:
        criteria = criteria or LoanFilter()
        stmt = select(Loan)
        if criteria.employee_id is not None:
            stmt = stmt.where(Loan.employee_id == criteria.employee_id)
        if criteria.status is not None:
            stmt = stmt.where(Loan.status == LoanStatus(criteria.status).value)
        if criteria.issued_from is not None:
            stmt = stmt.where(Loan.issue_date >= criteria.issued_from)
        if criteria.issued_to is not None:
            stmt = stmt.where(Loan.issue_date <= criteria.issued_to)
        if criteria.min_principal is not None:
            stmt = stmt.where(Loan.principal >= criteria.min_principal)
        stmt = stmt.order_by(Loan.issue_date.desc(), Loan.created_at.desc())
        return [_loan_to_record(row) for row in tx.execute(stmt).scalars()]

    # Repayments

    def get_repayment(self, tx: Session, repayment_id: UUID) -> RepaymentRecord | None:
        row = tx.execute(
            select(Repayment)
            .where(Repayment.id == repayment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _repayment_to_record(row) if row is not None else None

    def get_repayments_for_loan(self, tx: Session, loan_id: UUID) -> list[RepaymentRecord]:
        rows = tx.execute(
            select(Repayment)
            .where(Repayment.loan_id == loan_id)
            .order_by(Repayment.repay_date, Repayment.created_at)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_repayment_to_record(row) for row in rows]

    def put_repayment(self, tx: Session, record: RepaymentRecord) -> RepaymentRecord:
        row = tx.get(Repayment, record.id)
        if row is None:
            row = Repayment(
                id=record.id,
                loan_id=record.loan_id,
                employee_id=record.employee_id,
                amount=record.amount,
                repay_date=record.repay_date,
                created_by=record.created_by,
                updated_by=record.updated_by,
            )
            tx.add(row)
        else:
            row.amount = record.amount
            row.repay_date = record.repay_date
            row.updated_by = record.updated_by
        tx.flush()
        return _repayment_to_record(row)

    def delete_repayment(self, tx: Session, repayment_id: UUID) -> None:
        tx.execute(delete(Repayment).where(Repayment.id == repayment_id))

    def list_repayments(
        self, tx: Session, criteria: RepaymentFilter | None = None
    ) -> list[RepaymentRecord]:
        criteria = criteria or RepaymentFilter()
        stmt = select(Repayment)
        if criteria.loan_id is not None:
            stmt = stmt.where(Repayment.loan_id == criteria.loan_id)
        if criteria.employee_id is not None:
            stmt = stmt.where(Repayment.employee_id == criteria.employee_id)
        if criteria.repaid_from is not None:
            stmt = stmt.where(Repayment.repay_date >= criteria.repaid_from)
        if criteria.repaid_to is not None:
            stmt = stmt.where(Repayment.repay_date <= criteria.repaid_to)
        stmt = stmt.order_by(Repayment.repay_date.desc(), Repayment.created_at.desc())
        return [_repayment_to_record(row) for row in tx.execute(stmt).scalars()]

    def repaid_totals(
        self, tx: Session, loan_ids: Iterable[UUID] | None = None
    ) -> dict[UUID, RepaidTotal]:
        stmt = select(
            Repayment.loan_id,
            func.coalesce(func.sum(type_coerce(Repayment.amount, BigInteger)), 0),
            func.count(Repayment.id),
        ).group_by(Repayment.loan_id)
        if loan_ids is not None:
            ids = list(loan_ids)
            if not ids:
                return {}
            stmt = stmt.where(Repayment.loan_id.in_(ids))
        return {
            loan_id: RepaidTotal(MoneyAmount.from_minor_units(int(units)), count)
            for loan_id, units, count in tx.execute(stmt)
        }
