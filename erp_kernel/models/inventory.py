"""
Module: erp_kernel.models.inventory
Responsibility: ORM persistence for items, inventory cost layers and the
    per-layer depletion audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - InventoryLayer is append-only: rows are never deleted, and after
      insert only remaining_qty (non-increasing) and is_depleted change.
      Guarded by CHECK constraints here and ORM listeners in
      db/immutability.py.
    - 0 <= remaining_qty <= initial_qty, and is_depleted == (remaining_qty == 0).
    - layer_seq is unique and monotonic (allocated by SequenceService); it is
      the FIFO tie-breaker for layers received on the same date.
    - Item.qty_on_hand / Item.avg_cost are a denormalized cache of layer
      truth.  Nothing on a write path may branch on them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString


class ItemClass(str, Enum):
    """Inventory classification; drives the default asset account."""

    RAW_MATERIAL = "raw_material"
    WORK_IN_PROCESS = "work_in_process"
    FINISHED_GOOD = "finished_good"
    SERVICE = "service"


class Item(TrackedBase):
    """
    Stock item with a denormalized on-hand cache.

    qty_on_hand and avg_cost are refreshed from layers by the Inventory Layer
    Store after every receipt/depletion and verified by the Sync Auditor.
    They are a read optimization, never a source of truth.
    """

    __tablename__ = "items"

    sku: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    item_class: Mapped[ItemClass] = mapped_column(
        String(30),
        nullable=False,
        default=ItemClass.RAW_MATERIAL,
    )

    # Overrides the class default inventory account when set
    asset_account_code: Mapped[str | None] = mapped_column(
        String(20),
        ForeignKey("accounts.code"),
        nullable=True,
    )

    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="EA",
    )

    # Denormalized cache
    qty_on_hand: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    avg_cost: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    @property
    def is_stocked(self) -> bool:
        """Service items carry no layers and no COGS."""
        return self.item_class != ItemClass.SERVICE

    def __repr__(self) -> str:
        return f"<Item {self.sku} qty={self.qty_on_hand} avg={self.avg_cost}>"


class InventoryLayer(TrackedBase):
    """
    One receipt lot with a fixed unit cost, depleted oldest-first.
    """

    __tablename__ = "inventory_layers"

    __table_args__ = (
        CheckConstraint("initial_qty > 0", name="ck_layer_initial_positive"),
        CheckConstraint("remaining_qty >= 0", name="ck_layer_remaining_nonnegative"),
        CheckConstraint("remaining_qty <= initial_qty", name="ck_layer_remaining_le_initial"),
        CheckConstraint("unit_cost >= 0", name="ck_layer_unit_cost_nonnegative"),
        Index("idx_layer_fifo", "item_id", "is_depleted", "receive_date", "layer_seq"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    batch_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    layer_seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    initial_qty: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    remaining_qty: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    # Minor units per unit of quantity, fixed at receipt
    unit_cost: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    receive_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    is_depleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # PO number, production run reference, "OPENING", ...
    source_reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    item: Mapped[Item] = relationship()

    depletions: Mapped[list["LayerDepletion"]] = relationship(
        back_populates="layer",
        order_by="LayerDepletion.created_at",
    )

    @property
    def remaining_value(self) -> Decimal:
        """Unrounded remaining value; callers round once over the sum."""
        return self.remaining_qty * self.unit_cost

    def __repr__(self) -> str:
        return (
            f"<InventoryLayer {self.batch_number} seq={self.layer_seq} "
            f"remaining={self.remaining_qty}/{self.initial_qty} @ {self.unit_cost}>"
        )


class LayerDepletion(TrackedBase):
    """
    Immutable record of quantity taken from one layer by one depletion.

    The (layer, quantity, unit_cost) tuples returned by a depletion are
    persisted here so that COGS and production consumption can be traced
    back to the exact receipt lots.
    """

    __tablename__ = "layer_depletions"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_depletion_quantity_positive"),
        Index("idx_depletion_layer", "layer_id"),
        Index("idx_depletion_reference", "reference"),
    )

    layer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_layers.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    unit_cost: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    depleted_on: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    layer: Mapped[InventoryLayer] = relationship(back_populates="depletions")
