"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML document and parses it into the typed ``ledger_config.schema``
dataclasses.  Runtime callers go through ``ledger_config.get_active_config()``
instead of calling this module directly.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` or ``KeyError`` with a descriptive
  message; required fields never fall back to silent defaults.
* Unknown keys are rejected, so a typo in a deployment file fails loudly
  instead of being ignored.
* Policy names must be members of the kernel's ``VoidPolicy`` /
  ``CurrencyPolicy`` enums.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError``.
* Wrong types, unknown keys, bad policy or level names  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    PolicyConfig,
    RetryConfig,
)
from ledger_kernel.domain.policies import CurrencyPolicy, VoidPolicy

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _reject_unknown(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")


def _typed(section: str, key: str, value: Any, kind: type) -> Any:
    # bool is an int subclass; keep "pool_size: true" from passing as 1
    if kind is not bool and isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be {kind.__name__}, got bool")
    if kind is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, kind):
        raise ValueError(
            f"{section}.{key} must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse the ``database`` section.  ``url`` is required."""
    fields = {
        "echo": bool,
        "pool_size": int,
        "max_overflow": int,
        "lock_timeout_ms": int,
        "statement_timeout_ms": int,
        "busy_timeout_seconds": float,
        "enforce_immutability": bool,
    }
    _reject_unknown("database", data, {"url", *fields})
    if not data.get("url"):
        raise KeyError("database.url is required")
    kwargs = {
        key: _typed("database", key, data[key], kind)
        for key, kind in fields.items()
        if key in data
    }
    for key in ("pool_size", "lock_timeout_ms", "statement_timeout_ms"):
        if key in kwargs and kwargs[key] <= 0:
            raise ValueError(f"database.{key} must be positive, got {kwargs[key]}")
    return DatabaseConfig(url=str(data["url"]), **kwargs)


def parse_retry(data: dict[str, Any]) -> RetryConfig:
    _reject_unknown("retry", data, {"max_attempts", "backoff_seconds"})
    config = RetryConfig(
        max_attempts=_typed("retry", "max_attempts", data.get("max_attempts", 3), int),
        backoff_seconds=_typed(
            "retry", "backoff_seconds", data.get("backoff_seconds", 0.05), float
        ),
    )
    if config.max_attempts < 1:
        raise ValueError(f"retry.max_attempts must be at least 1, got {config.max_attempts}")
    if config.backoff_seconds < 0:
        raise ValueError(
            f"retry.backoff_seconds must not be negative, got {config.backoff_seconds}"
        )
    return config


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    _reject_unknown("logging", data, {"level"})
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(
            f"logging.level must be one of {', '.join(_LOG_LEVELS)}, got {level!r}"
        )
    return LoggingConfig(level=level)


def parse_policy(data: dict[str, Any]) -> PolicyConfig:
    """
    Parse the ``policy`` section.

    Raises:
        ValueError: if a policy name is not a kernel policy value.
    """
    _reject_unknown("policy", data, {"void_policy", "currency_policy"})
    void_policy = str(data.get("void_policy", VoidPolicy.EXCLUDE_VOIDED.value))
    currency_policy = str(
        data.get("currency_policy", CurrencyPolicy.PER_CURRENCY.value)
    )
    allowed_void = [p.value for p in VoidPolicy]
    allowed_currency = [p.value for p in CurrencyPolicy]
    if void_policy not in allowed_void:
        raise ValueError(
            f"policy.void_policy must be one of {', '.join(allowed_void)}, "
            f"got {void_policy!r}"
        )
    if currency_policy not in allowed_currency:
        raise ValueError(
            f"policy.currency_policy must be one of {', '.join(allowed_currency)}, "
            f"got {currency_policy!r}"
        )
    return PolicyConfig(void_policy=void_policy, currency_policy=currency_policy)


def parse_config(data: dict[str, Any], source: str | None = None) -> LedgerConfig:
    """
    Parse a whole configuration document.

    Preconditions:
        - ``data`` is the mapping produced by ``load_yaml_file``.
    Postconditions:
        - Returns a frozen ``LedgerConfig``.
    """
    _reject_unknown("root", data, {"database", "retry", "logging", "policy"})
    return LedgerConfig(
        database=parse_database(_section(data, "database")),
        retry=parse_retry(_section(data, "retry")),
        logging=parse_logging(_section(data, "logging")),
        policy=parse_policy(_section(data, "policy")),
        source=source,
    )


def log_level(config: LoggingConfig) -> int:
    """Numeric ``logging`` level for a parsed level name."""
    return logging.getLevelName(config.level)
