"""
erp_services.sync_auditor -- drift detection for the denormalized item cache.

Responsibility:
    Recomputes every item's on-hand quantity, value and average cost from
    its inventory layers and compares them with the cached
    Item.qty_on_hand / Item.avg_cost.  Drift is reported as data
    (SyncDrift) and corrected only on explicit request (resync()).

Architecture position:
    Services -- read-mostly, session-bound.  Invoked by the
    audit_inventory_sync script and by tests after every workflow.

Invariants enforced:
    - Never mutates inventory layers.  resync() writes only the two cache
      columns of Item.
    - Drift is a value, not an exception; an audit never aborts a unit of
      work.

Failure modes:
    - None beyond database errors.  resync() flushes; the caller commits.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.money import round_half_up
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import InventoryLayer, Item
from erp_services.layer_store import summarize_layers

logger = get_logger("services.sync_auditor")

DEFAULT_HEALTH_THRESHOLD = 100000


@dataclass(frozen=True)
class SyncDrift:
    """One item whose cached fields disagree with its layers."""

    item_id: UUID
    sku: str
    cached_qty: Decimal
    layer_qty: Decimal
    cached_avg_cost: int
    layer_avg_cost: int
    cached_value: int
    layer_value: int

    @property
    def qty_difference(self) -> Decimal:
        return self.layer_qty - self.cached_qty

    @property
    def cost_difference(self) -> int:
        return self.layer_avg_cost - self.cached_avg_cost

    @property
    def value_discrepancy(self) -> int:
        return self.layer_value - self.cached_value


@dataclass(frozen=True)
class SyncAuditReport:
    audited_at: datetime
    items_audited: int
    drifts: tuple[SyncDrift, ...]

    @property
    def items_out_of_sync(self) -> int:
        return len(self.drifts)

    @property
    def items_in_sync(self) -> int:
        return self.items_audited - len(self.drifts)

    @property
    def is_clean(self) -> bool:
        return not self.drifts

    @property
    def total_value_discrepancy(self) -> int:
        """Sum of absolute value discrepancies."""
        return sum(abs(d.value_discrepancy) for d in self.drifts)


@dataclass(frozen=True)
class ResyncResult:
    items_checked: int
    corrected_item_ids: tuple[UUID, ...]

    @property
    def items_corrected(self) -> int:
        return len(self.corrected_item_ids)


@dataclass(frozen=True)
class InventoryHealth:
    """Ledger-independent comparison of total layer value vs cached value."""

    layer_value_total: int
    cached_value_total: int
    threshold: int

    @property
    def difference(self) -> int:
        return self.layer_value_total - self.cached_value_total

    @property
    def is_healthy(self) -> bool:
        return abs(self.difference) <= self.threshold


class SyncAuditor:
    """Compares and optionally repairs the item cache against layer truth."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        health_threshold: int = DEFAULT_HEALTH_THRESHOLD,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._health_threshold = health_threshold

    def audit(self) -> SyncAuditReport:
        """Report every item whose cached qty or avg cost has drifted."""
        drifts: list[SyncDrift] = []
        items = self._items()
        layers_by_item = self._open_layers_by_item()

        for item in items:
            layer_qty, layer_value, layer_avg = summarize_layers(layers_by_item.get(item.id, ()))
            if item.qty_on_hand == layer_qty and item.avg_cost == layer_avg:
                continue
            drift = SyncDrift(
                item_id=item.id,
                sku=item.sku,
                cached_qty=item.qty_on_hand,
                layer_qty=layer_qty,
                cached_avg_cost=item.avg_cost,
                layer_avg_cost=layer_avg,
                cached_value=_cached_value(item),
                layer_value=layer_value,
            )
            drifts.append(drift)
            logger.warning(
                "inventory_cache_drift_detected",
                extra={
                    "item_id": str(item.id),
                    "sku": item.sku,
                    "cached_qty": item.qty_on_hand,
                    "layer_qty": layer_qty,
                    "cached_avg_cost": item.avg_cost,
                    "layer_avg_cost": layer_avg,
                    "value_discrepancy": drift.value_discrepancy,
                },
            )

        report = SyncAuditReport(
            audited_at=self._clock.now(),
            items_audited=len(items),
            drifts=tuple(drifts),
        )
        logger.info(
            "inventory_sync_audit_completed",
            extra={
                "items_audited": report.items_audited,
                "items_out_of_sync": report.items_out_of_sync,
                "total_value_discrepancy": report.total_value_discrepancy,
            },
        )
        return report

    def resync(self, actor_id: UUID) -> ResyncResult:
        """Overwrite drifted caches from layers.  Flushes; does not commit."""
        corrected: list[UUID] = []
        items = self._items()
        layers_by_item = self._open_layers_by_item()

        for item in items:
            layer_qty, _, layer_avg = summarize_layers(layers_by_item.get(item.id, ()))
            if item.qty_on_hand == layer_qty and item.avg_cost == layer_avg:
                continue
            logger.info(
                "inventory_cache_resynced",
                extra={
                    "item_id": str(item.id),
                    "sku": item.sku,
                    "old_qty": item.qty_on_hand,
                    "new_qty": layer_qty,
                    "old_avg_cost": item.avg_cost,
                    "new_avg_cost": layer_avg,
                },
            )
            item.qty_on_hand = layer_qty
            item.avg_cost = layer_avg
            item.updated_by_id = actor_id
            corrected.append(item.id)

        self._session.flush()
        return ResyncResult(items_checked=len(items), corrected_item_ids=tuple(corrected))

    def health_check(self, threshold: int | None = None) -> InventoryHealth:
        """Total layer value vs total cached value (qty * avg cost)."""
        items = self._items()
        layers_by_item = self._open_layers_by_item()
        layer_total = sum(
            summarize_layers(layers_by_item.get(item.id, ()))[1] for item in items
        )
        cached_total = sum(_cached_value(item) for item in items)
        health = InventoryHealth(
            layer_value_total=layer_total,
            cached_value_total=cached_total,
            threshold=self._health_threshold if threshold is None else threshold,
        )
        log = logger.info if health.is_healthy else logger.warning
        log(
            "inventory_health_checked",
            extra={
                "layer_value_total": health.layer_value_total,
                "cached_value_total": health.cached_value_total,
                "difference": health.difference,
                "threshold": health.threshold,
                "is_healthy": health.is_healthy,
            },
        )
        return health

    def _items(self) -> list[Item]:
        return list(
            self._session.execute(
                select(Item).order_by(Item.sku).execution_options(populate_existing=True)
            ).scalars()
        )

    def _open_layers_by_item(self) -> dict[UUID, list[InventoryLayer]]:
        grouped: dict[UUID, list[InventoryLayer]] = defaultdict(list)
        for layer in self._session.execute(
            select(InventoryLayer).where(InventoryLayer.is_depleted.is_(False))
        ).scalars():
            grouped[layer.item_id].append(layer)
        return grouped


def _cached_value(item: Item) -> int:
    return round_half_up(item.qty_on_hand * item.avg_cost)
