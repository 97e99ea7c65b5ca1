"""Persistence models for the ERP kernel."""

from erp_kernel.models.account import Account, AccountType
from erp_kernel.models.inventory import (
    InventoryLayer,
    Item,
    ItemClass,
    LayerDepletion,
)
from erp_kernel.models.journal import JournalEntry, JournalLine, LedgerSettings
from erp_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "InventoryLayer",
    "Item",
    "ItemClass",
    "JournalEntry",
    "JournalLine",
    "LayerDepletion",
    "LedgerSettings",
    "SequenceCounter",
]
