"""
erp_services.layer_store -- Inventory Layer Store: FIFO cost lots per item.

Responsibility:
    Owns per-item inventory cost layers.  Creates a layer on every receipt
    or production output, depletes layers oldest-first, and answers
    valuation queries.  The layers are the source of truth for on-hand
    quantity and value; the Item.qty_on_hand / Item.avg_cost cache is
    refreshed from them after every mutation and never read to decide
    anything.

Architecture position:
    Services -- stateful, session-bound.  Called by the inventory,
    production and sales workflows in erp_modules.  Allocates layer
    sequence numbers through erp_kernel.services.sequence_service.

Invariants enforced:
    - FIFO: depletion consumes layers ordered by (receive_date, layer_seq).
    - All-or-nothing: availability is checked under lock BEFORE any layer is
      touched, so a rejected depletion leaves every layer unchanged.
    - Serialized depletion: the item row and its open layers are locked
      with SELECT ... FOR UPDATE for the rest of the caller's transaction.
    - 0 <= remaining_qty <= initial_qty; is_depleted == (remaining_qty == 0).
    - Every (layer, quantity, unit_cost) consumed is written as a
      LayerDepletion row.

Failure modes:
    - ItemNotFoundError: unknown item id.
    - InvalidQuantityError: non-positive receive/deplete quantity.
    - InsufficientStockError: requested quantity exceeds open layers.
    - TypeError / ValueError: unit cost not a non-negative int.

Usage:
    store = InventoryLayerStore(session, clock)
    store.receive(item.id, Decimal("100"), 1200, "LOT-1", date(2024, 3, 1), actor_id)
    result = store.deplete(item.id, Decimal("30"), actor_id, reference="SO-2024-00001")
    result.total_cost          # 36000
    store.value_on_hand(item.id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.money import round_half_up, to_quantity, validate_minor_units
from erp_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import InventoryLayer, Item, LayerDepletion
from erp_kernel.services.sequence_service import SequenceService

logger = get_logger("services.layer_store")


@dataclass(frozen=True)
class LayerConsumption:
    """Quantity taken from one layer by one depletion."""

    layer_id: UUID
    batch_number: str
    receive_date: date
    quantity: Decimal
    unit_cost: int

    @property
    def extended_cost(self) -> Decimal:
        """Unrounded cost; totals round once over the sum."""
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class DepletionResult:
    """Outcome of a FIFO depletion, used for COGS and production postings."""

    item_id: UUID
    quantity: Decimal
    consumptions: tuple[LayerConsumption, ...]
    total_cost: int
    average_unit_cost: int
    reference: str | None = None


@dataclass(frozen=True)
class LayerSnapshot:
    """Layer-derived quantity, value and average cost of one item."""

    item_id: UUID
    quantity: Decimal
    value: int
    average_cost: int
    open_layers: int


def summarize_layers(layers) -> tuple[Decimal, int, int]:
    """
    ``(quantity, value, average_cost)`` over open layers.

    value = round(sum(remaining * unit_cost)); average_cost = round(value / qty),
    0 when nothing remains.
    """
    quantity = sum((layer.remaining_qty for layer in layers), Decimal(0))
    value = round_half_up(sum((layer.remaining_value for layer in layers), Decimal(0)))
    average = round_half_up(Decimal(value) / quantity) if quantity > 0 else 0
    return quantity, value, average


class InventoryLayerStore:
    """
    Session-bound FIFO layer store.

    Non-goals:
        - Does NOT commit.  The calling workflow commits the layer mutation
          together with its journal entry.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def receive(
        self,
        item_id: UUID,
        quantity: Decimal | int | str,
        unit_cost: int,
        batch_number: str,
        receive_date: date,
        actor_id: UUID,
        source_reference: str | None = None,
    ) -> InventoryLayer:
        """
        Create a new layer with ``remaining_qty == quantity``.

        Postconditions:
            - Layer flushed with a fresh ``layer_seq``.
            - Item cache equals layer truth.
        """
        quantity = to_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(str(quantity), "receive")
        validate_minor_units(unit_cost, "unit_cost")

        item = self._lock_item(item_id)

        layer = InventoryLayer(
            item_id=item.id,
            batch_number=batch_number,
            layer_seq=self._sequences.next_value(SequenceService.INVENTORY_LAYER),
            initial_qty=quantity,
            remaining_qty=quantity,
            unit_cost=unit_cost,
            receive_date=receive_date,
            is_depleted=False,
            source_reference=source_reference,
            created_by_id=actor_id,
        )
        self._session.add(layer)
        self._session.flush()

        self._refresh_item_cache(item, actor_id)

        logger.info(
            "inventory_layer_received",
            extra={
                "item_id": str(item.id),
                "sku": item.sku,
                "layer_id": str(layer.id),
                "layer_seq": layer.layer_seq,
                "batch_number": batch_number,
                "quantity": quantity,
                "unit_cost": unit_cost,
                "receive_date": receive_date,
                "reference": source_reference,
            },
        )
        return layer

    def deplete(
        self,
        item_id: UUID,
        quantity: Decimal | int | str,
        actor_id: UUID,
        reference: str | None = None,
        depleted_on: date | None = None,
    ) -> DepletionResult:
        """
        Consume ``quantity`` oldest-first.

        Preconditions:
            - ``quantity > 0``.
        Postconditions:
            - Sum of quantities taken == ``quantity``.
            - ``total_cost == round(sum(q * unit_cost))`` over consumptions.
            - ``average_unit_cost == round(total_cost / quantity)``.
        Raises:
            InsufficientStockError: before any layer is modified.
        """
        quantity = to_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(str(quantity), "deplete")
        depleted_on = depleted_on or self._clock.today()

        item = self._lock_item(item_id)
        layers = self._open_layers(item.id, for_update=True)

        available = sum((layer.remaining_qty for layer in layers), Decimal(0))
        if available < quantity:
            logger.warning(
                "inventory_depletion_rejected",
                extra={
                    "item_id": str(item.id),
                    "sku": item.sku,
                    "requested": quantity,
                    "available": available,
                    "reference": reference,
                },
            )
            raise InsufficientStockError(str(item.id), str(quantity), str(available))

        outstanding = quantity
        consumptions: list[LayerConsumption] = []
        for layer in layers:
            if outstanding <= 0:
                break
            taken = min(layer.remaining_qty, outstanding)
            layer.remaining_qty = layer.remaining_qty - taken
            layer.is_depleted = layer.remaining_qty == 0
            layer.updated_by_id = actor_id
            outstanding -= taken

            self._session.add(
                LayerDepletion(
                    layer_id=layer.id,
                    quantity=taken,
                    unit_cost=layer.unit_cost,
                    reference=reference,
                    depleted_on=depleted_on,
                    created_by_id=actor_id,
                )
            )
            consumptions.append(
                LayerConsumption(
                    layer_id=layer.id,
                    batch_number=layer.batch_number,
                    receive_date=layer.receive_date,
                    quantity=taken,
                    unit_cost=layer.unit_cost,
                )
            )
            logger.debug(
                "inventory_layer_consumed",
                extra={
                    "layer_id": str(layer.id),
                    "layer_seq": layer.layer_seq,
                    "taken": taken,
                    "remaining": layer.remaining_qty,
                },
            )

        self._session.flush()

        total_cost = round_half_up(
            sum((c.extended_cost for c in consumptions), Decimal(0))
        )
        result = DepletionResult(
            item_id=item.id,
            quantity=quantity,
            consumptions=tuple(consumptions),
            total_cost=total_cost,
            average_unit_cost=round_half_up(Decimal(total_cost) / quantity),
            reference=reference,
        )

        self._refresh_item_cache(item, actor_id)

        logger.info(
            "inventory_depleted",
            extra={
                "item_id": str(item.id),
                "sku": item.sku,
                "quantity": quantity,
                "layers_touched": len(consumptions),
                "total_cost": result.total_cost,
                "average_unit_cost": result.average_unit_cost,
                "reference": reference,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Queries (layer truth)
    # ------------------------------------------------------------------

    def available_layers(self, item_id: UUID) -> list[InventoryLayer]:
        """Open layers in FIFO order."""
        self._get_item(item_id)
        return self._open_layers(item_id)

    def value_on_hand(self, item_id: UUID) -> int:
        """Authoritative valuation: round(sum(remaining * unit_cost))."""
        return self.layer_snapshot(item_id).value

    def quantity_on_hand(self, item_id: UUID) -> Decimal:
        return self.layer_snapshot(item_id).quantity

    def layer_snapshot(self, item_id: UUID) -> LayerSnapshot:
        self._get_item(item_id)
        layers = self._open_layers(item_id)
        quantity, value, average = summarize_layers(layers)
        return LayerSnapshot(
            item_id=item_id,
            quantity=quantity,
            value=value,
            average_cost=average,
            open_layers=len(layers),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_item(self, item_id: UUID) -> Item:
        item = self._session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    def _lock_item(self, item_id: UUID) -> Item:
        item = self._session.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    def _open_layers(self, item_id: UUID, for_update: bool = False) -> list[InventoryLayer]:
        stmt = (
            select(InventoryLayer)
            .where(
                InventoryLayer.item_id == item_id,
                InventoryLayer.is_depleted.is_(False),
            )
            .order_by(InventoryLayer.receive_date, InventoryLayer.layer_seq)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self._session.execute(stmt).scalars())

    def _refresh_item_cache(self, item: Item, actor_id: UUID) -> None:
        """Overwrite the denormalized cache from open layers."""
        quantity, _, average = summarize_layers(self._open_layers(item.id))
        if item.qty_on_hand != quantity or item.avg_cost != average:
            item.qty_on_hand = quantity
            item.avg_cost = average
            item.updated_by_id = actor_id
            self._session.flush()
