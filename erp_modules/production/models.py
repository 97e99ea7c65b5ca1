"""
Production Domain Models (``erp_modules.production.models``).

Requests describe what happened on the shop floor (quantities, minutes,
materials drawn); the result carries the cost rollup, the output layer and
the journal entry.  Money is integer minor units, quantities Decimal.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from erp_engines.costing.stages import CostRollup, YieldWarning


@dataclass(frozen=True)
class MaterialRequest:
    """Quantity of a stocked item drawn FIFO into a production run."""

    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class StageRequest:
    """
    One executed stage.

    Time-driven stages give duration_minutes (hourly_rate falls back to the
    stage definition's default).  Material-driven stages list the materials
    drawn at that stage; their cost is the actual FIFO layer cost.
    """

    stage_type: str
    input_qty: Decimal
    output_qty: Decimal
    waste_bp: int = 0
    duration_minutes: Decimal | None = None
    hourly_rate: int | None = None
    materials: tuple[MaterialRequest, ...] = ()


@dataclass(frozen=True)
class ProductionRunRequest:
    """
    A complete production run.

    input_materials are drawn before the first stage and form the opening
    WIP; stage materials are drawn at their stage.
    """

    run_reference: str
    output_item_id: UUID
    output_batch_number: str
    production_date: date
    stages: tuple[StageRequest, ...]
    input_materials: tuple[MaterialRequest, ...] = ()


@dataclass(frozen=True)
class ConsumedMaterial:
    item_id: UUID
    sku: str
    quantity: Decimal
    cost: int
    asset_account_code: str
    stage_index: int | None = None  # None == opening input


@dataclass(frozen=True)
class ProductionRunResult:
    """
    Outcome of a completed run.

    variance = output_value - (consumed_cost + absorbed_cost); positive is
    a credit to the variance account, negative a debit.
    """

    run_reference: str
    rollup: CostRollup
    output_layer_id: UUID
    output_qty: Decimal
    unit_cost: int
    output_value: int
    consumed_cost: int
    absorbed_cost: int
    variance: int
    journal_entry_id: UUID
    consumed: tuple[ConsumedMaterial, ...] = field(default_factory=tuple)

    @property
    def warnings(self) -> tuple[YieldWarning, ...]:
        return self.rollup.warnings
