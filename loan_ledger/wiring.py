"""
Wiring -- Build a ready-to-use ledger from settings.

Single production entrypoint: configures logging, initializes the
database engine, and constructs the store, engine, query service and API
facade around one session factory.

Usage:
    ledger = build_ledger(load_settings("ledger.yaml"))
    ledger.api.issue_loan(42, "1000.00", "2024-06-01", "Relocation")
"""

from __future__ import annotations

from typing import NamedTuple

from loan_ledger.api import LedgerApi
from loan_ledger.config import LedgerSettings
from loan_ledger.db.engine import create_tables, get_session_factory, init_engine_from_url
from loan_ledger.domain.clock import Clock, SystemClock
from loan_ledger.logging_config import configure_logging
from loan_ledger.selectors.query_service import QueryService
from loan_ledger.services.ledger_engine import LedgerEngine
from loan_ledger.store.sql_store import SqlLedgerStore


class Ledger(NamedTuple):
    """The wired components; all share one store."""

    store: SqlLedgerStore
    engine: LedgerEngine
    queries: QueryService
    api: LedgerApi


def build_ledger(
    settings: LedgerSettings | None = None,
    clock: Clock | None = None,
    create_schema: bool = False,
) -> Ledger:
    """Build a SQL-backed ledger from ``settings``.

    Args:
        settings: Runtime settings; defaults to ``LedgerSettings()``.
        clock: Optional clock; default SystemClock.
        create_schema: Create missing tables (development and tests).

    Returns:
        Ledger with store, engine, queries and api wired together.
    """
    settings = settings or LedgerSettings()
    configure_logging(level=settings.log_level.upper())
    init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        lock_timeout_seconds=settings.lock_timeout_seconds,
    )
    if create_schema:
        create_tables()

    store = SqlLedgerStore(get_session_factory())
    engine = LedgerEngine(store, clock=clock or SystemClock(), settings=settings)
    queries = QueryService(store)
    return Ledger(store=store, engine=engine, queries=queries, api=LedgerApi(engine, queries))
