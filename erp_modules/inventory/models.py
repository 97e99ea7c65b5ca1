"""
Inventory Domain Models (``erp_modules.inventory.models``).

Frozen value objects returned by ``InventoryService``.  They carry ids and
amounts only; the audit-grade truth is the inventory layer and the journal
entry they point at.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ItemSummary:
    """Item master data plus its layer-derived position."""

    id: UUID
    sku: str
    name: str
    item_class: str
    asset_account_code: str
    quantity_on_hand: Decimal
    value_on_hand: int
    average_cost: int


@dataclass(frozen=True)
class InventoryPostingResult:
    """
    Outcome of a receipt or opening balance.

    journal_entry_id is None only for zero-cost layers, which move no value.
    """

    item_id: UUID
    layer_id: UUID
    batch_number: str
    quantity: Decimal
    unit_cost: int
    value: int
    receive_date: date
    reference: str | None
    journal_entry_id: UUID | None
