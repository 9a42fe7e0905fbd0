"""
Configuration Loader (``loan_ledger.config``).

Responsibility
--------------
Loads ledger settings from an optional YAML file and the process
environment into a frozen ``LedgerSettings``.

Invariants enforced
-------------------
* Unknown keys are rejected; a typo never silently falls back to a default.
* Environment overrides win over the file: ``DATABASE_URL`` and
  ``LOAN_LEDGER_LOG_LEVEL``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DATABASE_URL = "sqlite:///loan_ledger.db"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the engine, store and logging."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    lock_timeout_seconds: float = 5.0
    # Attempts after the first one when a transaction hits a transient conflict
    conflict_retries: int = 3
    retry_backoff_seconds: float = 0.05
    # Inactivate a loan when fully repaid, reactivate when its balance reopens
    sync_status_with_balance: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"max_overflow must be >= 0, got {self.max_overflow}")
        if self.lock_timeout_seconds <= 0:
            raise ValueError(
                f"lock_timeout_seconds must be > 0, got {self.lock_timeout_seconds}"
            )
        if self.conflict_retries < 0:
            raise ValueError(f"conflict_retries must be >= 0, got {self.conflict_retries}")
        if self.retry_backoff_seconds < 0:
            raise ValueError(
                f"retry_backoff_seconds must be >= 0, got {self.retry_backoff_seconds}"
            )
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level: {self.log_level!r}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    The YAML file may nest the keys under a top-level ``loan_ledger`` key.
    """
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    if path is not None:
        data = load_yaml_file(Path(path))
        if set(data) == {"loan_ledger"}:
            data = data["loan_ledger"] or {}
        known = {f.name for f in fields(LedgerSettings)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings key(s): {', '.join(unknown)}")
        values.update(data)

    settings = LedgerSettings(**values)

    overrides: dict[str, Any] = {}
    if env.get("DATABASE_URL"):
        overrides["database_url"] = env["DATABASE_URL"]
    if env.get("LOAN_LEDGER_LOG_LEVEL"):
        overrides["log_level"] = env["LOAN_LEDGER_LOG_LEVEL"].upper()
    if overrides:
        settings = replace(settings, **overrides)
    return settings
