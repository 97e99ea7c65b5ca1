"""
Tests for configuration loading and chart-of-accounts seeding.

Verifies:
- The default set parses into frozen, validated dataclasses
- Role bindings must resolve to accounts in the chart
- ERP_CONFIG_TRACE audit log on every load
- Seeding is idempotent
"""

import copy
import logging
from pathlib import Path

import pytest
import yaml

from erp_config import DEFAULT_CONFIG_PATH, get_active_config, seed_chart_of_accounts
from erp_config.loader import compute_checksum, load_yaml_file, parse_configuration
from erp_engines.costing import FormulaKind
from erp_kernel.exceptions import UnknownStageTypeError


@pytest.fixture
def raw_config() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


class TestDefaultSet:
    def test_chart_and_roles(self, erp_config):
        assert len(erp_config.chart_of_accounts) == 13
        assert erp_config.accounts.accounts_receivable == "1200"
        assert erp_config.accounts.refill_revenue == "4000"
        assert erp_config.accounts.production_variance == "5200"
        assert "3900" in erp_config.account_codes()

    def test_stage_lookup_is_case_insensitive(self, erp_config):
        stage = erp_config.stage("sublimation")
        assert stage.stage_type == "SUBLIMATION"
        assert stage.formula_kind is FormulaKind.TIME_DRIVEN
        assert stage.default_hourly_rate == 1500

    def test_yield_band_from_definition(self, erp_config):
        band = erp_config.stage("MIXING").yield_band
        assert band.minimum_bp == 9025
        assert band.maximum_bp == 9975

    def test_unknown_stage(self, erp_config):
        with pytest.raises(UnknownStageTypeError) as exc_info:
            erp_config.stage("ROASTING")
        assert exc_info.value.stage_type == "ROASTING"

    def test_billing_settings(self, erp_config):
        assert erp_config.billing.contract_prefix == "AMC"
        assert erp_config.billing.refill_invoice_prefix == "SO-REFILL"
        assert erp_config.billing.payment_terms_days == 30

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "ERP_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_set_id"] == "default"
        assert traces[0]["checksum"] == config.checksum


class TestValidation:
    def test_duplicate_account_codes(self, raw_config):
        raw_config["chart_of_accounts"].append(
            {"code": "1200", "name": "Duplicate", "type": "asset"}
        )
        with pytest.raises(ValueError, match="Duplicate account codes"):
            parse_configuration(raw_config)

    def test_role_pointing_at_unknown_account(self, raw_config):
        raw_config["account_roles"]["sales_tax"] = "2999"
        with pytest.raises(ValueError, match="sales_tax=2999"):
            parse_configuration(raw_config)

    def test_missing_role(self, raw_config):
        del raw_config["account_roles"]["cost_of_goods_sold"]
        with pytest.raises(KeyError):
            parse_configuration(raw_config)

    def test_duplicate_stage_types(self, raw_config):
        raw_config["stages"].append(copy.deepcopy(raw_config["stages"][0]))
        with pytest.raises(ValueError):
            parse_configuration(raw_config)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")

    def test_billing_defaults_when_section_absent(self, raw_config):
        del raw_config["billing"]
        assert parse_configuration(raw_config).billing.sales_invoice_prefix == "SO"

    def test_override_path(self, raw_config, tmp_path: Path):
        raw_config["config_id"] = "acme"
        path = tmp_path / "acme.yaml"
        path.write_text(yaml.safe_dump(raw_config))
        assert get_active_config(path).config_id == "acme"


class TestChecksum:
    def test_stable_for_equal_data(self, raw_config):
        assert compute_checksum(raw_config) == compute_checksum(copy.deepcopy(raw_config))

    def test_changes_with_content(self, raw_config):
        before = compute_checksum(raw_config)
        raw_config["billing"]["payment_terms_days"] = 45
        assert compute_checksum(raw_config) != before


class TestSeedChartOfAccounts:
    def test_seed_is_idempotent(self, session, erp_config, test_actor_id):
        first = seed_chart_of_accounts(session, erp_config, test_actor_id)
        second = seed_chart_of_accounts(session, erp_config, test_actor_id)
        assert len(first) == 13
        assert second == []

    def test_seed_logged_at_info(self, session, erp_config, test_actor_id, captured_logs):
        kernel_logger = logging.getLogger("erp_kernel")
        previous = kernel_logger.level
        kernel_logger.setLevel(logging.INFO)
        try:
            seed_chart_of_accounts(session, erp_config, test_actor_id)
        finally:
            kernel_logger.setLevel(previous)

        seeded = [r for r in captured_logs() if r["message"] == "chart_of_accounts_seeded"]
        assert seeded[0]["accounts_created"] == 13
        assert seeded[0]["accounts_existing"] == 0

    def test_seeded_accounts_are_active(self, chart_of_accounts):
        assert all(account.is_active for account in chart_of_accounts.values())
        assert chart_of_accounts["1340"].name == "Finished Goods Inventory"
