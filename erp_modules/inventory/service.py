"""
Inventory Module Service (``erp_modules.inventory.service``).

Responsibility
--------------
Item master maintenance, goods receipts and opening balances.  Composes the
``InventoryLayerStore`` (cost layers) with the ``JournalPoster`` (ledger) so
that every layer created here is paired with its balanced entry.

Architecture
------------
Layer: **Modules** -- thin orchestration wrapper.

1. Calls ``InventoryLayerStore.receive()`` to create the layer.
2. Calls ``JournalPoster.post()``:
   - receipt:          Dr item asset account / Cr GRNI
   - opening balance:  Dr item asset account / Cr opening balance equity

Invariants
----------
- Each public method owns its transaction boundary: ``session.commit()``
  on success, ``session.rollback()`` then re-raise on failure.  The layer
  and its entry commit together or not at all.
- Entry value == round(quantity * unit_cost) == the layer's contribution to
  value on hand.

Failure Modes
-------------
- ``ItemNotFoundError`` / ``InvalidQuantityError`` from the layer store.
- ``PostingError`` / ``PeriodLockedError`` from the poster.

Usage::

    service = InventoryService(session, config, clock)
    result = service.receive_inventory(
        item_id=item.id, quantity=Decimal("100"), unit_cost=1200,
        batch_number="LOT-0001", receive_date=date(2024, 3, 1),
        actor_id=actor_id, reference="PO-1001",
    )
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config.schema import ErpConfiguration
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.journal import PostingLine
from erp_kernel.domain.money import extend, to_quantity
from erp_kernel.exceptions import ItemNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import Item, ItemClass
from erp_kernel.services.journal_poster import JournalPoster
from erp_modules.inventory.models import InventoryPostingResult, ItemSummary
from erp_services.layer_store import InventoryLayerStore

logger = get_logger("modules.inventory.service")


class InventoryService:
    """
    Orchestrates receipts and opening balances.

    Transaction boundary: this service commits on success, rolls back on
    failure.  The layer store and poster only flush.
    """

    def __init__(
        self,
        session: Session,
        config: ErpConfiguration,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._layers = InventoryLayerStore(session, self._clock)
        self._poster = JournalPoster(session, self._clock)

    # =========================================================================
    # Item master
    # =========================================================================

    def create_item(
        self,
        sku: str,
        name: str,
        item_class: ItemClass,
        actor_id: UUID,
        asset_account_code: str | None = None,
        unit_of_measure: str = "EA",
    ) -> Item:
        """Create an item with an empty cache.  Commits."""
        try:
            item = Item(
                sku=sku,
                name=name,
                item_class=ItemClass(item_class).value,
                asset_account_code=asset_account_code,
                unit_of_measure=unit_of_measure,
                qty_on_hand=Decimal("0"),
                avg_cost=0,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(item)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info("item_created", extra={"item_id": str(item.id), "sku": sku})
        return item

    def get_item_by_sku(self, sku: str) -> Item:
        item = self._session.execute(select(Item).where(Item.sku == sku)).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(sku)
        return item

    def item_summary(self, item_id: UUID) -> ItemSummary:
        """Master data plus layer-derived position (never the cache)."""
        item = self._session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        snapshot = self._layers.layer_snapshot(item_id)
        return ItemSummary(
            id=item.id,
            sku=item.sku,
            name=item.name,
            item_class=item.item_class,
            asset_account_code=self._config.accounts.inventory_account_for(item),
            quantity_on_hand=snapshot.quantity,
            value_on_hand=snapshot.value,
            average_cost=snapshot.average_cost,
        )

    # =========================================================================
    # Receipts
    # =========================================================================

    def receive_inventory(
        self,
        item_id: UUID,
        quantity: Decimal | int | str,
        unit_cost: int,
        batch_number: str,
        receive_date: date,
        actor_id: UUID,
        reference: str | None = None,
    ) -> InventoryPostingResult:
        """
        Receive purchased goods: new layer + Dr inventory / Cr GRNI.

        Postconditions:
            - Session committed on success, rolled back on any failure.
        """
        return self._receive_and_post(
            item_id=item_id,
            quantity=quantity,
            unit_cost=unit_cost,
            batch_number=batch_number,
            receive_date=receive_date,
            actor_id=actor_id,
            reference=reference,
            offset_account=self._config.accounts.goods_received_not_invoiced,
            description="Goods received",
            event="inventory_received",
        )

    def record_opening_balance(
        self,
        item_id: UUID,
        quantity: Decimal | int | str,
        unit_cost: int,
        as_of: date,
        actor_id: UUID,
        batch_number: str = "OPENING",
        reference: str | None = None,
    ) -> InventoryPostingResult:
        """
        Bring existing stock onto the books: new layer + Dr inventory /
        Cr opening balance equity.
        """
        return self._receive_and_post(
            item_id=item_id,
            quantity=quantity,
            unit_cost=unit_cost,
            batch_number=batch_number,
            receive_date=as_of,
            actor_id=actor_id,
            reference=reference or f"OPENING-{batch_number}",
            offset_account=self._config.accounts.opening_balance_equity,
            description="Opening inventory balance",
            event="inventory_opening_balance_recorded",
        )

    def _receive_and_post(
        self,
        *,
        item_id: UUID,
        quantity: Decimal | int | str,
        unit_cost: int,
        batch_number: str,
        receive_date: date,
        actor_id: UUID,
        reference: str | None,
        offset_account: str,
        description: str,
        event: str,
    ) -> InventoryPostingResult:
        quantity = to_quantity(quantity)
        try:
            layer = self._layers.receive(
                item_id=item_id,
                quantity=quantity,
                unit_cost=unit_cost,
                batch_number=batch_number,
                receive_date=receive_date,
                actor_id=actor_id,
                source_reference=reference,
            )
            item = layer.item
            value = extend(quantity, unit_cost)

            entry_id = None
            if value > 0:
                asset_account = self._config.accounts.inventory_account_for(item)
                entry = self._poster.post(
                    entry_date=receive_date,
                    description=f"{description}: {item.sku} x {quantity} ({batch_number})",
                    lines=[
                        PostingLine.dr(asset_account, value, memo=batch_number),
                        PostingLine.cr(offset_account, value, memo=batch_number),
                    ],
                    actor_id=actor_id,
                    reference=reference,
                )
                entry_id = entry.id

            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            event,
            extra={
                "item_id": str(item_id),
                "layer_id": str(layer.id),
                "value": value,
                "journal_entry_id": str(entry_id) if entry_id else None,
                "reference": reference,
            },
        )
        return InventoryPostingResult(
            item_id=item_id,
            layer_id=layer.id,
            batch_number=batch_number,
            quantity=quantity,
            unit_cost=unit_cost,
            value=value,
            receive_date=receive_date,
            reference=reference,
            journal_entry_id=entry_id,
        )
