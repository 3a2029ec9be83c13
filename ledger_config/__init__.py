"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.  Returns a frozen ``LedgerConfig``.

Architecture position:
    Configuration -- sits above ``ledger_kernel``.  The kernel MUST NEVER
    import from ``ledger_config``; ``ledger_config.bridges`` translates a
    ``LedgerConfig`` into kernel inputs (policy, engine, retry options).

Resolution order:
    1. ``path`` argument, if given.
    2. ``LEDGER_CONFIG_PATH`` environment variable.
    3. The bundled ``defaults.yaml``.

    ``LEDGER_DATABASE_URL``, when set, replaces ``database.url`` of whichever
    file was loaded.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema validation failures.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry naming the source file, the database
    backend and the active policies.  The connection URL itself is never
    logged.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from sqlalchemy.engine import make_url

from ledger_config.loader import load_yaml_file, parse_config
from ledger_config.schema import LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "defaults.yaml"

__all__ = ["LedgerConfig", "get_active_config"]


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a YAML configuration file.

    Returns:
        LedgerConfig -- frozen and validated.

    Raises:
        FileNotFoundError: If the selected file does not exist.
        KeyError: If a required key is missing.
        ValueError: If configuration validation fails.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_FILE
    path = Path(path)

    config = parse_config(load_yaml_file(path), source=str(path))

    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=url_override),
        )

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_source": config.source,
            "database_backend": make_url(config.database.url).get_backend_name(),
            "database_url_overridden": bool(url_override),
            "void_policy": config.policy.void_policy,
            "currency_policy": config.policy.currency_policy,
            "log_level": config.logging.level,
        },
    )
    return config
