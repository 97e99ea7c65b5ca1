"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``erp_config.schema``.  Callers use ``erp_config.get_active_config()``;
this module is the parsing layer underneath it.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Every account role binding must name an account present in the chart
  of accounts.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown account type / formula kind  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import (
    AccountDef,
    BillingSettings,
    ErpConfiguration,
    LedgerAccounts,
    StageDefinitionDef,
    SyncSettings,
)
from erp_engines.costing.stages import FormulaKind
from erp_kernel.models.account import AccountType


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_account(data: dict[str, Any]) -> AccountDef:
    return AccountDef(
        code=str(data["code"]),
        name=data["name"],
        account_type=AccountType(data["type"]),
    )


def parse_ledger_accounts(data: dict[str, Any], known_codes: frozenset[str]) -> LedgerAccounts:
    """
    Parse role bindings.  Every role is required and must resolve.

    Raises:
        KeyError: a role is missing.
        ValueError: a role names an account not in the chart.
    """
    roles = {f.name: str(data[f.name]) for f in fields(LedgerAccounts)}
    unknown = sorted(
        f"{role}={code}" for role, code in roles.items() if code not in known_codes
    )
    if unknown:
        raise ValueError(f"Account roles reference unknown accounts: {', '.join(unknown)}")
    return LedgerAccounts(**roles)


def parse_stage(data: dict[str, Any]) -> StageDefinitionDef:
    """
    Parse a ``StageDefinitionDef``.

    Time-driven stages may carry a ``default_hourly_rate`` in minor units.
    """
    rate = data.get("default_hourly_rate")
    return StageDefinitionDef(
        stage_type=str(data["stage_type"]).upper(),
        display_name=data.get("display_name", data["stage_type"]),
        formula_kind=FormulaKind(data["formula_kind"]),
        expected_yield_bp=int(data["expected_yield_bp"]),
        yield_tolerance_bp=int(data.get("yield_tolerance_bp", 0)),
        default_hourly_rate=int(rate) if rate is not None else None,
        description=data.get("description", ""),
    )


def parse_billing(data: dict[str, Any]) -> BillingSettings:
    defaults = BillingSettings()
    return BillingSettings(
        refill_invoice_prefix=data.get("refill_invoice_prefix", defaults.refill_invoice_prefix),
        sales_invoice_prefix=data.get("sales_invoice_prefix", defaults.sales_invoice_prefix),
        contract_prefix=data.get("contract_prefix", defaults.contract_prefix),
        payment_terms_days=int(data.get("payment_terms_days", defaults.payment_terms_days)),
    )


def parse_sync(data: dict[str, Any]) -> SyncSettings:
    return SyncSettings(
        health_threshold=int(data.get("health_threshold", SyncSettings().health_threshold)),
    )


def parse_configuration(data: dict[str, Any]) -> ErpConfiguration:
    """
    Parse a whole configuration set.

    Raises:
        KeyError: required sections or keys missing.
        ValueError: duplicate account codes or stage types, unresolved roles.
    """
    chart = tuple(parse_account(a) for a in data["chart_of_accounts"])
    codes = [a.code for a in chart]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"Duplicate account codes: {', '.join(duplicates)}")

    stages = tuple(parse_stage(s) for s in data.get("stages", ()))
    stage_types = [s.stage_type for s in stages]
    if len(set(stage_types)) != len(stage_types):
        raise ValueError(f"Duplicate stage types in {stage_types}")

    return ErpConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        chart_of_accounts=chart,
        accounts=parse_ledger_accounts(data["account_roles"], frozenset(codes)),
        stages=stages,
        billing=parse_billing(data.get("billing", {})),
        sync=parse_sync(data.get("sync", {})),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> ErpConfiguration:
    """Load and parse the configuration set at ``path``."""
    return parse_configuration(load_yaml_file(path))
