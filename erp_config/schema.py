"""
ErpConfiguration schema.

Frozen dataclasses that a YAML configuration set is parsed into by
``erp_config.loader``.  Everything here is declarative data: account codes,
account roles, production stage definitions and billing/sync settings.
No executable logic lives in configuration; stage cost formulas are
selected by ``FormulaKind``.
"""

from __future__ import annotations

from dataclasses import dataclass

from erp_engines.costing.stages import FormulaKind, YieldBand
from erp_kernel.exceptions import UnknownStageTypeError
from erp_kernel.models.account import AccountType
from erp_kernel.models.inventory import Item, ItemClass

# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountDef:
    """One account to seed into the chart of accounts."""

    code: str
    name: str
    account_type: AccountType


@dataclass(frozen=True)
class LedgerAccounts:
    """
    Account role -> account code bindings used by the posting workflows.
    """

    accounts_receivable: str
    raw_materials: str
    work_in_process: str
    finished_goods: str
    goods_received_not_invoiced: str
    sales_tax: str
    opening_balance_equity: str
    refill_revenue: str
    sales_income: str
    sales_discounts: str
    overhead_absorption: str
    cost_of_goods_sold: str
    production_variance: str

    def inventory_account_for(self, item: Item) -> str:
        """
        Asset account holding ``item``'s layers.

        The item's own asset_account_code wins; otherwise the class default.

        Raises:
            ValueError: service items carry no inventory.
        """
        if item.asset_account_code:
            return item.asset_account_code
        by_class = {
            ItemClass.RAW_MATERIAL: self.raw_materials,
            ItemClass.WORK_IN_PROCESS: self.work_in_process,
            ItemClass.FINISHED_GOOD: self.finished_goods,
        }
        account = by_class.get(ItemClass(item.item_class))
        if account is None:
            raise ValueError(f"Item {item.sku} ({item.item_class}) has no inventory account")
        return account


# ---------------------------------------------------------------------------
# Production stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageDefinitionDef:
    """Configured production stage type (SUBLIMATION, MIXING, ...)."""

    stage_type: str
    display_name: str
    formula_kind: FormulaKind
    expected_yield_bp: int
    yield_tolerance_bp: int
    default_hourly_rate: int | None = None
    description: str = ""

    @property
    def yield_band(self) -> YieldBand:
        return YieldBand(
            expected_bp=self.expected_yield_bp,
            tolerance_bp=self.yield_tolerance_bp,
        )


# ---------------------------------------------------------------------------
# Billing / sync settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingSettings:
    refill_invoice_prefix: str = "SO-REFILL"
    sales_invoice_prefix: str = "SO"
    contract_prefix: str = "AMC"
    payment_terms_days: int = 30


@dataclass(frozen=True)
class SyncSettings:
    # Minor units; layer vs cached total value difference tolerated by health_check
    health_threshold: int = 100000


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ErpConfiguration:
    """Root configuration object returned by ``get_active_config()``."""

    config_id: str
    version: int
    chart_of_accounts: tuple[AccountDef, ...]
    accounts: LedgerAccounts
    stages: tuple[StageDefinitionDef, ...]
    billing: BillingSettings
    sync: SyncSettings
    checksum: str = ""

    def stage(self, stage_type: str) -> StageDefinitionDef:
        """
        Look up a stage definition by type (case-insensitive).

        Raises:
            UnknownStageTypeError: no definition configured.
        """
        wanted = stage_type.upper()
        for definition in self.stages:
            if definition.stage_type == wanted:
                return definition
        raise UnknownStageTypeError(stage_type)

    def account_codes(self) -> frozenset[str]:
        return frozenset(a.code for a in self.chart_of_accounts)
