"""
Tests for ORM-level immutability of posted ledger and inventory history.

Verifies:
- Journal entries and lines cannot be updated or deleted
- Layer depletion records cannot be updated or deleted
- Inventory layers accept depletion bookkeeping only (remaining_qty down)
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from erp_kernel.domain.journal import PostingLine
from erp_kernel.exceptions import ImmutabilityViolationError
from erp_kernel.models.inventory import LayerDepletion


@pytest.fixture
def posted_entry(journal_poster, chart_of_accounts, test_actor_id):
    return journal_poster.post(
        entry_date=date(2024, 1, 15),
        description="Goods received",
        lines=[PostingLine.dr("1310", 100000), PostingLine.cr("2110", 100000)],
        actor_id=test_actor_id,
        reference="GRN-1",
    )


@pytest.fixture
def layer(create_item, layer_store, test_actor_id):
    item = create_item()
    return layer_store.receive(item.id, Decimal("10"), 500, "IMM-1", date(2024, 1, 1), test_actor_id)


class TestJournalImmutability:
    def test_line_amount_update_blocked(self, session, posted_entry):
        posted_entry.lines[0].debit = 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalLine"
        session.rollback()

    def test_entry_description_update_blocked(self, session, posted_entry):
        posted_entry.description = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_entry_delete_blocked(self, session, posted_entry):
        session.delete(posted_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_violation_is_logged(self, session, posted_entry, captured_logs):
        posted_entry.lines[1].account_code = "1200"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["field"] == "account_code"


class TestLayerImmutability:
    def test_depletion_bookkeeping_allowed(self, session, layer, test_actor_id):
        layer.remaining_qty = Decimal("4")
        layer.updated_by_id = test_actor_id
        session.flush()
        assert layer.remaining_qty == Decimal("4")

    def test_remaining_qty_cannot_increase(self, session, layer):
        layer.remaining_qty = Decimal("11")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_unit_cost_frozen(self, session, layer):
        layer.unit_cost = 499
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_receive_date_frozen(self, session, layer):
        layer.receive_date = date(2023, 12, 1)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_layer_delete_blocked(self, session, layer):
        session.delete(layer)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestDepletionImmutability:
    @pytest.fixture
    def depletion(self, session, layer, layer_store, test_actor_id):
        layer_store.deplete(layer.item_id, 3, test_actor_id, reference="SO-1")
        return session.execute(
            select(LayerDepletion).where(LayerDepletion.layer_id == layer.id)
        ).scalar_one()

    def test_update_blocked(self, session, depletion):
        depletion.quantity = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, depletion):
        session.delete(depletion)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
