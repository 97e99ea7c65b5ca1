"""
Tests for production runs: FIFO material draw, cost rollup and posting.

Freeze-dry scenario used throughout:
    100 fruit @ 10.00          opening WIP 100000
    CLEANING   60 min @ 25/h   +2500    -> 102500
    SUBLIMATION 600 min @ 15/h, 90% waste
                               102500 * 10% + 15000 = 25250
    10 units out              unit cost 2525
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from erp_kernel.exceptions import (
    InsufficientStockError,
    InvalidStageError,
    UnknownStageTypeError,
)
from erp_kernel.models.inventory import InventoryLayer, ItemClass
from erp_kernel.models.journal import JournalEntry
from erp_modules.production import MaterialRequest, ProductionRunRequest, StageRequest

PRODUCTION_DATE = date(2024, 1, 10)


@pytest.fixture
def fruit(create_item, inventory_service, test_actor_id):
    item = create_item(sku="FRUIT-STRAWBERRY")
    inventory_service.receive_inventory(
        item.id, Decimal("100"), 1000, "FRUIT-LOT-1", date(2024, 1, 1), test_actor_id
    )
    return item


@pytest.fixture
def freeze_dried(create_item):
    return create_item(sku="FD-STRAWBERRY", item_class=ItemClass.FINISHED_GOOD)


def _freeze_dry_run(fruit, output, waste_bp=9000, sublimation_minutes="600", reference="PROD-0001"):
    return ProductionRunRequest(
        run_reference=reference,
        output_item_id=output.id,
        output_batch_number="FD-LOT-1",
        production_date=PRODUCTION_DATE,
        input_materials=(MaterialRequest(fruit.id, Decimal("100")),),
        stages=(
            StageRequest(
                stage_type="CLEANING",
                input_qty=Decimal("100"),
                output_qty=Decimal("100"),
                duration_minutes=Decimal("60"),
            ),
            StageRequest(
                stage_type="SUBLIMATION",
                input_qty=Decimal("100"),
                output_qty=Decimal("10"),
                waste_bp=waste_bp,
                duration_minutes=(
                    Decimal(sublimation_minutes) if sublimation_minutes is not None else None
                ),
            ),
        ),
    )


def _entry_lines(session, entry_id):
    entry = session.get(JournalEntry, entry_id)
    return [(l.account_code, l.debit, l.credit) for l in entry.lines]


class TestCompleteRun:
    def test_freeze_dry_run(
        self, session, production_service, layer_store, fruit, freeze_dried, test_actor_id
    ):
        result = production_service.complete_run(_freeze_dry_run(fruit, freeze_dried), test_actor_id)

        assert result.output_qty == Decimal("10")
        assert result.unit_cost == 2525
        assert result.output_value == 25250
        assert result.consumed_cost == 100000
        assert result.absorbed_cost == 17500
        assert result.variance == -92250
        assert result.warnings == ()

        assert _entry_lines(session, result.journal_entry_id) == [
            ("1340", 25250, 0),
            ("1310", 0, 100000),
            ("5000", 0, 17500),
            ("5200", 92250, 0),
        ]

        output_layer = session.get(InventoryLayer, result.output_layer_id)
        assert output_layer.unit_cost == 2525
        assert output_layer.source_reference == "PROD-0001"
        assert layer_store.quantity_on_hand(fruit.id) == Decimal("0")
        assert layer_store.value_on_hand(freeze_dried.id) == 25250

    def test_without_waste_no_variance(
        self, session, production_service, fruit, freeze_dried, test_actor_id
    ):
        result = production_service.complete_run(
            _freeze_dry_run(fruit, freeze_dried, waste_bp=0), test_actor_id
        )
        assert result.rollup.final_wip == 117500
        assert result.unit_cost == 11750
        assert result.variance == 0
        assert [code for code, _, _ in _entry_lines(session, result.journal_entry_id)] == [
            "1340",
            "1310",
            "5000",
        ]

    def test_consumed_materials_reported(self, production_service, fruit, freeze_dried, test_actor_id):
        result = production_service.complete_run(_freeze_dry_run(fruit, freeze_dried), test_actor_id)
        assert len(result.consumed) == 1
        consumed = result.consumed[0]
        assert consumed.sku == "FRUIT-STRAWBERRY"
        assert consumed.cost == 100000
        assert consumed.stage_index is None
        assert consumed.asset_account_code == "1310"

    def test_yield_warning_does_not_block(
        self, production_service, fruit, freeze_dried, test_actor_id
    ):
        request = ProductionRunRequest(
            run_reference="PROD-PACK",
            output_item_id=freeze_dried.id,
            output_batch_number="PACK-1",
            production_date=PRODUCTION_DATE,
            input_materials=(MaterialRequest(fruit.id, Decimal("10")),),
            stages=(
                StageRequest(
                    stage_type="PACKING",
                    input_qty=Decimal("10"),
                    output_qty=Decimal("9"),
                    duration_minutes=Decimal("30"),
                ),
            ),
        )

        result = production_service.complete_run(request, test_actor_id)

        assert len(result.warnings) == 1
        assert result.warnings[0].stage_type == "PACKING"
        # 11000 / 9
        assert result.unit_cost == 1222
        assert result.output_value == 10998
        assert result.variance == -2
        assert result.journal_entry_id is not None

    def test_material_driven_stage(
        self, session, production_service, fruit, freeze_dried, create_item,
        inventory_service, test_actor_id,
    ):
        sugar = create_item(sku="SUGAR")
        inventory_service.receive_inventory(
            sugar.id, Decimal("5"), 500, "SUGAR-1", date(2024, 1, 2), test_actor_id
        )
        request = ProductionRunRequest(
            run_reference="PROD-MIX",
            output_item_id=freeze_dried.id,
            output_batch_number="MIX-1",
            production_date=PRODUCTION_DATE,
            input_materials=(MaterialRequest(fruit.id, Decimal("10")),),
            stages=(
                StageRequest(
                    stage_type="mixing",
                    input_qty=Decimal("10"),
                    output_qty=Decimal("9.5"),
                    materials=(MaterialRequest(sugar.id, Decimal("2")),),
                ),
            ),
        )

        result = production_service.complete_run(request, test_actor_id)

        assert result.rollup.stage_results[0].stage_cost == 1000
        assert result.absorbed_cost == 0
        assert result.consumed_cost == 11000
        assert [c.stage_index for c in result.consumed] == [None, 0]
        # 11000 / 9.5 = 1157.89 -> 1158; 9.5 * 1158 = 11001
        assert result.unit_cost == 1158
        assert result.variance == 1
        assert _entry_lines(session, result.journal_entry_id) == [
            ("1340", 11001, 0),
            ("1310", 0, 11000),
            ("5200", 0, 1),
        ]


class TestFailedRuns:
    def test_missing_duration_rolls_back_draws(
        self, session, production_service, layer_store, fruit, freeze_dried, test_actor_id
    ):
        with pytest.raises(InvalidStageError):
            production_service.complete_run(
                _freeze_dry_run(fruit, freeze_dried, sublimation_minutes=None), test_actor_id
            )
        assert layer_store.quantity_on_hand(fruit.id) == Decimal("100")
        assert layer_store.quantity_on_hand(freeze_dried.id) == Decimal("0")
        assert session.execute(
            select(func.count(JournalEntry.id)).where(JournalEntry.reference == "PROD-0001")
        ).scalar_one() == 0

    def test_unknown_stage_type(self, production_service, fruit, freeze_dried, test_actor_id):
        request = ProductionRunRequest(
            run_reference="PROD-X",
            output_item_id=freeze_dried.id,
            output_batch_number="X",
            production_date=PRODUCTION_DATE,
            stages=(
                StageRequest(
                    stage_type="ROASTING",
                    input_qty=Decimal("1"),
                    output_qty=Decimal("1"),
                    duration_minutes=Decimal("1"),
                ),
            ),
        )
        with pytest.raises(UnknownStageTypeError):
            production_service.complete_run(request, test_actor_id)

    def test_insufficient_input(
        self, production_service, layer_store, fruit, freeze_dried, test_actor_id
    ):
        request = ProductionRunRequest(
            run_reference="PROD-BIG",
            output_item_id=freeze_dried.id,
            output_batch_number="BIG",
            production_date=PRODUCTION_DATE,
            input_materials=(MaterialRequest(fruit.id, Decimal("1000")),),
            stages=(
                StageRequest(
                    stage_type="CLEANING",
                    input_qty=Decimal("1000"),
                    output_qty=Decimal("1000"),
                    duration_minutes=Decimal("60"),
                ),
            ),
        )
        with pytest.raises(InsufficientStockError):
            production_service.complete_run(request, test_actor_id)
        assert layer_store.quantity_on_hand(fruit.id) == Decimal("100")

    def test_wrong_formula_for_stage(
        self, production_service, layer_store, fruit, freeze_dried, test_actor_id
    ):
        request = ProductionRunRequest(
            run_reference="PROD-MIXT",
            output_item_id=freeze_dried.id,
            output_batch_number="MIXT",
            production_date=PRODUCTION_DATE,
            input_materials=(MaterialRequest(fruit.id, Decimal("10")),),
            stages=(
                StageRequest(
                    stage_type="MIXING",
                    input_qty=Decimal("10"),
                    output_qty=Decimal("9.5"),
                    duration_minutes=Decimal("15"),
                    hourly_rate=1000,
                ),
            ),
        )
        with pytest.raises(InvalidStageError):
            production_service.complete_run(request, test_actor_id)
        assert layer_store.quantity_on_hand(fruit.id) == Decimal("100")

    def test_no_stages(self, production_service, fruit, freeze_dried, test_actor_id):
        request = ProductionRunRequest(
            run_reference="PROD-EMPTY",
            output_item_id=freeze_dried.id,
            output_batch_number="E",
            production_date=PRODUCTION_DATE,
            stages=(),
        )
        with pytest.raises(InvalidStageError):
            production_service.complete_run(request, test_actor_id)
