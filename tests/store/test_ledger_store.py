"""
Contract tests shared by every LedgerStore implementation.

Verifies:
- Loan versions start at 1 and move on by one per write
- A write carrying an old version raises StaleRecordError
- Rollback discards every write of the transaction
- Ordering of loan and repayment listings
- repaid_totals grouping
"""

from dataclasses import replace
from datetime import date
from uuid import uuid4

import pytest

from loan_ledger.domain.dtos import LoanRecord, RepaymentRecord
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import StaleRecordError
from loan_ledger.models.loan import LoanStatus
from loan_ledger.store.base import RepaidTotal


def _loan(**overrides) -> LoanRecord:
    fields = dict(
        id=uuid4(),
        employee_id=9,
        principal=MoneyAmount.of("100.00"),
        issue_date=date(2024, 3, 1),
        reason="Store test",
    )
    fields.update(overrides)
    return LoanRecord(**fields)


def _repayment(loan: LoanRecord, amount: str, on: date = date(2024, 3, 2)) -> RepaymentRecord:
    return RepaymentRecord(
        id=uuid4(),
        loan_id=loan.id,
        employee_id=loan.employee_id,
        amount=MoneyAmount.of(amount),
        repay_date=on,
    )


class TestLoanVersions:

    def test_new_loan_gets_version_one(self, store):
        with store.transaction() as tx:
            stored = store.put_loan(tx, _loan(version=0))
        assert stored.version == 1
        assert stored.status == LoanStatus.ACTIVE

    def test_update_bumps_version(self, store):
        with store.transaction() as tx:
            stored = store.put_loan(tx, _loan())
        with store.transaction() as tx:
            updated = store.put_loan(tx, replace(stored, reason="New"))
        assert updated.version == 2
        with store.transaction(read_only=True) as tx:
            assert store.get_loan(tx, stored.id).reason == "New"

    def test_stale_version_rejected(self, store):
        with store.transaction() as tx:
            stored = store.put_loan(tx, _loan())
        with store.transaction() as tx:
            store.put_loan(tx, stored)

        with pytest.raises(StaleRecordError) as exc_info:
            with store.transaction() as tx:
                store.put_loan(tx, stored)

        assert exc_info.value.expected == 1
        assert store.is_transient_error(exc_info.value)

    def test_missing_loan(self, store):
        with store.transaction(read_only=True) as tx:
            assert store.get_loan(tx, uuid4()) is None


class TestTransactions:

    def test_rollback_discards_writes(self, store):
        loan = _loan()

        with pytest.raises(ZeroDivisionError):
            with store.transaction() as tx:
                store.put_loan(tx, loan)
                store.put_repayment(tx, _repayment(loan, "1.00"))
                1 / 0

        with store.transaction(read_only=True) as tx:
            assert store.get_loan(tx, loan.id) is None
            assert store.list_repayments(tx) == []

    def test_non_ledger_errors_are_not_transient(self, store):
        assert not store.is_transient_error(ValueError("x"))


class TestListings:

    def test_loans_newest_issue_date_first(self, store):
        old = _loan(issue_date=date(2024, 1, 1))
        new = _loan(issue_date=date(2024, 2, 1))
        with store.transaction() as tx:
            store.put_loan(tx, old)
            store.put_loan(tx, new)
        with store.transaction(read_only=True) as tx:
            assert [loan.id for loan in store.list_loans(tx)] == [new.id, old.id]

    def test_repayments_for_loan_oldest_first(self, store):
        loan = _loan()
        late = _repayment(loan, "2.00", on=date(2024, 3, 9))
        early = _repayment(loan, "1.00", on=date(2024, 3, 5))
        with store.transaction() as tx:
            store.put_loan(tx, loan)
            store.put_repayment(tx, late)
            store.put_repayment(tx, early)
        with store.transaction(read_only=True) as tx:
            assert [r.id for r in store.get_repayments_for_loan(tx, loan.id)] == [early.id, late.id]
            assert [r.id for r in store.list_repayments(tx)] == [late.id, early.id]

    def test_delete_repayment(self, store):
        loan = _loan()
        repayment = _repayment(loan, "1.00")
        with store.transaction() as tx:
            store.put_loan(tx, loan)
            store.put_repayment(tx, repayment)
        with store.transaction() as tx:
            store.delete_repayment(tx, repayment.id)
        with store.transaction(read_only=True) as tx:
            assert store.get_repayment(tx, repayment.id) is None


class TestRepaidTotals:

    def test_grouped_by_loan(self, store):
        first, second, unpaid = _loan(), _loan(), _loan()
        with store.transaction() as tx:
            for loan in (first, second, unpaid):
                store.put_loan(tx, loan)
            store.put_repayment(tx, _repayment(first, "10.00"))
            store.put_repayment(tx, _repayment(first, "0.05"))
            store.put_repayment(tx, _repayment(second, "7.00"))

        with store.transaction(read_only=True) as tx:
            totals = store.repaid_totals(tx)
            only_second = store.repaid_totals(tx, [second.id])
            none = store.repaid_totals(tx, [])

        assert totals[first.id] == RepaidTotal(MoneyAmount.of("10.05"), 2)
        assert totals[second.id] == RepaidTotal(MoneyAmount.of("7.00"), 1)
        assert unpaid.id not in totals
        assert set(only_second) == {second.id}
        assert none == {}