"""Read side of the ledger (no mutations)."""

from loan_ledger.selectors.query_service import QueryService

__all__ = ["QueryService"]
