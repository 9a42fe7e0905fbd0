"""Normalization of identifiers and statuses supplied by callers."""

from uuid import UUID

from loan_ledger.exceptions import (
    InvalidStatusError,
    LoanNotFoundError,
    RepaymentNotFoundError,
)
from loan_ledger.models.loan import LoanStatus


def parse_loan_id(value: UUID | str) -> UUID:
    """Normalize a loan identifier; anything unparseable is an unknown loan."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise LoanNotFoundError(value) from e


def parse_repayment_id(value: UUID | str) -> UUID:
    """Normalize a repayment identifier; anything unparseable is unknown."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise RepaymentNotFoundError(value) from e


def parse_status(value: LoanStatus | str) -> LoanStatus:
    """Accept a LoanStatus or its wire value ("active" / "inactive")."""
    if isinstance(value, LoanStatus):
        return value
    try:
        return LoanStatus(value)
    except ValueError as e:
        raise InvalidStatusError(value) from e
