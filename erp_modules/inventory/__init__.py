"""Inventory module: item master, receipts and opening balances."""

from erp_modules.inventory.models import InventoryPostingResult, ItemSummary
from erp_modules.inventory.service import InventoryService

__all__ = ["InventoryPostingResult", "InventoryService", "ItemSummary"]
