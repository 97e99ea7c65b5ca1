"""
Tests for the FIFO inventory layer store.

Verifies:
- Oldest-first depletion ordered by (receive_date, layer_seq)
- Cost of a depletion = round(sum(q * unit_cost)) over consumed layers
- Insufficient stock rejected before any layer is touched
- Depletion history rows and quantity conservation
- Item cache refreshed from layers after every mutation
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from erp_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from erp_kernel.models.inventory import InventoryLayer, LayerDepletion


@pytest.fixture
def item(create_item):
    return create_item(sku="FRUIT-APPLE")


def _depletions_for(session, layer_id):
    return list(
        session.execute(
            select(LayerDepletion).where(LayerDepletion.layer_id == layer_id)
        ).scalars()
    )


class TestReceive:
    def test_receive_creates_full_layer(self, layer_store, item, test_actor_id):
        layer = layer_store.receive(
            item.id, Decimal("100"), 1000, "BATCH-A", date(2024, 1, 1), test_actor_id
        )

        assert layer.initial_qty == Decimal("100")
        assert layer.remaining_qty == Decimal("100")
        assert layer.is_depleted is False
        assert layer.layer_seq > 0
        assert item.qty_on_hand == Decimal("100")
        assert item.avg_cost == 1000

    def test_layer_seq_increases(self, layer_store, item, test_actor_id):
        first = layer_store.receive(item.id, 1, 10, "B1", date(2024, 1, 1), test_actor_id)
        second = layer_store.receive(item.id, 1, 10, "B2", date(2024, 1, 1), test_actor_id)
        assert second.layer_seq > first.layer_seq

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_non_positive_quantity(self, layer_store, item, test_actor_id, quantity):
        with pytest.raises(InvalidQuantityError):
            layer_store.receive(item.id, quantity, 100, "B", date(2024, 1, 1), test_actor_id)

    def test_negative_cost(self, layer_store, item, test_actor_id):
        with pytest.raises(ValueError):
            layer_store.receive(item.id, 1, -100, "B", date(2024, 1, 1), test_actor_id)

    def test_unknown_item(self, layer_store, test_actor_id):
        with pytest.raises(ItemNotFoundError):
            layer_store.receive(uuid4(), 1, 100, "B", date(2024, 1, 1), test_actor_id)

    def test_fractional_quantity_value(self, layer_store, item, test_actor_id):
        layer_store.receive(item.id, Decimal("2.5"), 333, "B", date(2024, 1, 1), test_actor_id)
        snapshot = layer_store.layer_snapshot(item.id)
        # 832.5
        assert snapshot.value == 833
        assert snapshot.average_cost == 333


class TestFifoDepletion:
    def test_consumes_oldest_layer_first(self, layer_store, item, test_actor_id):
        layer_a = layer_store.receive(
            item.id, Decimal("100"), 1000, "A", date(2024, 1, 1), test_actor_id
        )
        layer_b = layer_store.receive(
            item.id, Decimal("50"), 1200, "B", date(2024, 1, 5), test_actor_id
        )

        result = layer_store.deplete(item.id, Decimal("120"), test_actor_id, reference="SO-1")

        assert [c.layer_id for c in result.consumptions] == [layer_a.id, layer_b.id]
        assert [c.quantity for c in result.consumptions] == [Decimal("100"), Decimal("20")]
        assert result.total_cost == 124000
        # 124000 / 120 = 1033.33
        assert result.average_unit_cost == 1033

        assert layer_a.remaining_qty == Decimal("0")
        assert layer_a.is_depleted is True
        assert layer_b.remaining_qty == Decimal("30")
        assert layer_store.value_on_hand(item.id) == 36000

        assert item.qty_on_hand == Decimal("30")
        assert item.avg_cost == 1200

    def test_same_date_ordered_by_arrival(self, layer_store, item, test_actor_id):
        first = layer_store.receive(item.id, 10, 500, "FIRST", date(2024, 2, 1), test_actor_id)
        layer_store.receive(item.id, 10, 900, "SECOND", date(2024, 2, 1), test_actor_id)

        result = layer_store.deplete(item.id, 5, test_actor_id)

        assert [c.layer_id for c in result.consumptions] == [first.id]
        assert result.total_cost == 2500

    def test_earlier_receive_date_wins_over_arrival_order(self, layer_store, item, test_actor_id):
        layer_store.receive(item.id, 10, 900, "LATE", date(2024, 1, 10), test_actor_id)
        backdated = layer_store.receive(
            item.id, 10, 500, "BACKDATED", date(2024, 1, 5), test_actor_id
        )

        result = layer_store.deplete(item.id, 4, test_actor_id)

        assert result.consumptions[0].layer_id == backdated.id
        assert result.total_cost == 2000

    def test_depleted_layers_are_skipped(self, layer_store, item, test_actor_id):
        layer_store.receive(item.id, 10, 100, "A", date(2024, 1, 1), test_actor_id)
        second = layer_store.receive(item.id, 10, 200, "B", date(2024, 1, 2), test_actor_id)
        layer_store.deplete(item.id, 10, test_actor_id)

        result = layer_store.deplete(item.id, 3, test_actor_id)

        assert [c.layer_id for c in result.consumptions] == [second.id]
        assert [layer.id for layer in layer_store.available_layers(item.id)] == [second.id]

    def test_fractional_depletion_rounds_once(self, layer_store, item, test_actor_id):
        layer_store.receive(item.id, Decimal("5"), 333, "A", date(2024, 1, 1), test_actor_id)
        result = layer_store.deplete(item.id, Decimal("2.5"), test_actor_id)
        assert result.total_cost == 833
        assert result.average_unit_cost == 333


class TestInsufficientStock:
    def test_rejected_without_touching_layers(self, session, layer_store, item, test_actor_id):
        layer_a = layer_store.receive(item.id, 100, 1000, "A", date(2024, 1, 1), test_actor_id)
        layer_b = layer_store.receive(item.id, 50, 1200, "B", date(2024, 1, 5), test_actor_id)

        with pytest.raises(InsufficientStockError) as exc_info:
            layer_store.deplete(item.id, 151, test_actor_id, reference="SO-BIG")

        assert Decimal(exc_info.value.available) == Decimal("150")
        assert Decimal(exc_info.value.requested) == Decimal("151")
        assert layer_a.remaining_qty == Decimal("100")
        assert layer_b.remaining_qty == Decimal("50")
        assert session.execute(select(func.count(LayerDepletion.id))).scalar_one() == 0
        assert item.qty_on_hand == Decimal("150")

    def test_item_without_layers(self, layer_store, item, test_actor_id):
        with pytest.raises(InsufficientStockError):
            layer_store.deplete(item.id, 1, test_actor_id)

    def test_rejection_is_logged(self, layer_store, item, test_actor_id, captured_logs):
        with pytest.raises(InsufficientStockError):
            layer_store.deplete(item.id, 1, test_actor_id, reference="SO-9")
        rejected = [r for r in captured_logs() if r["message"] == "inventory_depletion_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["reference"] == "SO-9"

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity(self, layer_store, item, test_actor_id, quantity):
        with pytest.raises(InvalidQuantityError):
            layer_store.deplete(item.id, quantity, test_actor_id)


class TestDepletionHistory:
    def test_one_row_per_layer_touched(self, session, layer_store, item, test_actor_id):
        layer_a = layer_store.receive(item.id, 100, 1000, "A", date(2024, 1, 1), test_actor_id)
        layer_b = layer_store.receive(item.id, 50, 1200, "B", date(2024, 1, 5), test_actor_id)

        layer_store.deplete(
            item.id, 120, test_actor_id, reference="PROD-7", depleted_on=date(2024, 1, 20)
        )

        rows_a = _depletions_for(session, layer_a.id)
        rows_b = _depletions_for(session, layer_b.id)
        assert len(rows_a) == 1 and len(rows_b) == 1
        assert rows_a[0].quantity == Decimal("100")
        assert rows_a[0].unit_cost == 1000
        assert rows_b[0].quantity == Decimal("20")
        assert rows_b[0].reference == "PROD-7"
        assert rows_b[0].depleted_on == date(2024, 1, 20)

    def test_depleted_on_defaults_to_clock(
        self, session, layer_store, item, test_actor_id, deterministic_clock
    ):
        layer = layer_store.receive(item.id, 10, 100, "A", date(2024, 1, 1), test_actor_id)
        layer_store.deplete(item.id, 1, test_actor_id)
        assert _depletions_for(session, layer.id)[0].depleted_on == deterministic_clock.today()

    def test_quantity_is_conserved(self, session, layer_store, item, test_actor_id):
        layer_store.receive(item.id, Decimal("10.5"), 100, "A", date(2024, 1, 1), test_actor_id)
        layer_store.receive(item.id, Decimal("7"), 110, "B", date(2024, 1, 2), test_actor_id)
        for quantity in (Decimal("3.25"), Decimal("8"), Decimal("1.75")):
            layer_store.deplete(item.id, quantity, test_actor_id)

        layers = list(
            session.execute(
                select(InventoryLayer).where(InventoryLayer.item_id == item.id)
            ).scalars()
        )
        for layer in layers:
            consumed = sum(
                (d.quantity for d in _depletions_for(session, layer.id)), Decimal(0)
            )
            assert consumed + layer.remaining_qty == layer.initial_qty
        assert layer_store.quantity_on_hand(item.id) == Decimal("4.5")
