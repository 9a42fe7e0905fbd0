"""Write side of the ledger."""

from loan_ledger.services.ledger_engine import LedgerEngine

__all__ = ["LedgerEngine"]
