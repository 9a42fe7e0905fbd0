"""
Loan Ledger Engine

Tracks employee loans and their repayments with:
- Fixed-point money arithmetic
- Atomic, retry-safe mutations
- Strict overpayment rejection under concurrency
- Derived (never stored) balances
"""

__version__ = "0.1.0"
