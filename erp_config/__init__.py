"""
erp_config -- single public entrypoint for ERP configuration.

Responsibility:
    Provides runtime configuration through ``get_active_config()``: the
    chart of accounts, account role bindings, production stage
    definitions, billing numbering and sync thresholds, all parsed from a
    YAML configuration set into frozen dataclasses.

Architecture position:
    Configuration -- sits above ``erp_kernel`` and ``erp_engines`` and
    below ``erp_modules``.  The kernel never imports from here.

Failure modes:
    - ``FileNotFoundError`` -- configuration set path does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ERP_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying postings back to the configuration that governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config.loader import load_configuration
from erp_config.schema import (
    AccountDef,
    BillingSettings,
    ErpConfiguration,
    LedgerAccounts,
    StageDefinitionDef,
    SyncSettings,
)
from erp_kernel.models.account import Account

_logger = logging.getLogger("erp_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> ErpConfiguration:
    """
    Load the active configuration set.

    Args:
        config_path: Override path to a configuration YAML file.  Defaults
            to erp_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError / KeyError: If the configuration fails validation.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config = load_configuration(path)

    _logger.info(
        "ERP_CONFIG_TRACE",
        extra={
            "trace_type": "ERP_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "account_count": len(config.chart_of_accounts),
            "stage_count": len(config.stages),
        },
    )
    return config


def seed_chart_of_accounts(
    session: Session,
    config: ErpConfiguration,
    actor_id: UUID,
) -> list[Account]:
    """
    Insert configured accounts that do not exist yet.  Flushes; no commit.

    Existing accounts are left untouched.  Returns the newly created rows.
    """
    existing = set(session.execute(select(Account.code)).scalars())
    created = []
    for definition in config.chart_of_accounts:
        if definition.code in existing:
            continue
        account = Account(
            code=definition.code,
            name=definition.name,
            account_type=definition.account_type.value,
            is_active=True,
            created_by_id=actor_id,
        )
        session.add(account)
        created.append(account)
    session.flush()
    _logger.info(
        "chart_of_accounts_seeded",
        extra={"accounts_created": len(created), "accounts_existing": len(existing)},
    )
    return created


__all__ = [
    "AccountDef",
    "BillingSettings",
    "DEFAULT_CONFIG_PATH",
    "ErpConfiguration",
    "LedgerAccounts",
    "StageDefinitionDef",
    "SyncSettings",
    "get_active_config",
    "seed_chart_of_accounts",
]
