"""
Production stage types - formula variants, yield bands and stage results.

Pure domain types only.  Stage cost formulas are a closed set of tagged
variants so that stage configuration stays serializable data:

    TimeDriven(hourly_rate, duration_minutes)    electricity, labor
    MaterialDriven(materials=(MaterialLine, ...)) consumed materials

Quantities are Decimal, amounts are integer minor units, rates and yields
are integer basis points (10000 == 100%).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from erp_kernel.domain.money import BASIS_POINTS_SCALE, to_quantity


class FormulaKind(str, Enum):
    """Enumerated stage cost formula families."""

    TIME_DRIVEN = "time_driven"
    MATERIAL_DRIVEN = "material_driven"


@dataclass(frozen=True)
class MaterialLine:
    """One material consumed by a material-driven stage."""

    quantity: Decimal
    unit_cost: int  # minor units per unit of quantity

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_quantity(self.quantity))
        if self.quantity < 0:
            raise ValueError(f"Material quantity cannot be negative: {self.quantity}")
        if isinstance(self.unit_cost, bool) or not isinstance(self.unit_cost, int):
            raise TypeError(f"unit_cost must be integer minor units, got {self.unit_cost!r}")
        if self.unit_cost < 0:
            raise ValueError(f"Material unit_cost cannot be negative: {self.unit_cost}")


@dataclass(frozen=True)
class TimeDriven:
    """Cost = round(hourly_rate / 60 * duration_minutes)."""

    hourly_rate: int
    duration_minutes: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.hourly_rate, bool) or not isinstance(self.hourly_rate, int):
            raise TypeError(f"hourly_rate must be integer minor units, got {self.hourly_rate!r}")
        if self.hourly_rate < 0:
            raise ValueError(f"hourly_rate cannot be negative: {self.hourly_rate}")
        object.__setattr__(self, "duration_minutes", to_quantity(self.duration_minutes))
        if self.duration_minutes < 0:
            raise ValueError(f"duration_minutes cannot be negative: {self.duration_minutes}")

    @property
    def kind(self) -> FormulaKind:
        return FormulaKind.TIME_DRIVEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "hourly_rate": self.hourly_rate,
            "duration_minutes": str(self.duration_minutes),
        }


@dataclass(frozen=True)
class MaterialDriven:
    """Cost = round(sum(quantity * unit_cost))."""

    materials: tuple[MaterialLine, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "materials", tuple(self.materials))

    @property
    def kind(self) -> FormulaKind:
        return FormulaKind.MATERIAL_DRIVEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "materials": [
                {"quantity": str(m.quantity), "unit_cost": m.unit_cost}
                for m in self.materials
            ],
        }


StageFormula = TimeDriven | MaterialDriven


def formula_from_dict(data: dict[str, Any]) -> StageFormula:
    """
    Rebuild a formula from its ``to_dict()`` form.

    Raises:
        ValueError: unknown ``kind``.
        KeyError: a required field is missing.
    """
    kind = FormulaKind(data["kind"])
    match kind:
        case FormulaKind.TIME_DRIVEN:
            return TimeDriven(
                hourly_rate=int(data["hourly_rate"]),
                duration_minutes=Decimal(str(data["duration_minutes"])),
            )
        case FormulaKind.MATERIAL_DRIVEN:
            return MaterialDriven(
                materials=tuple(
                    MaterialLine(
                        quantity=Decimal(str(m["quantity"])),
                        unit_cost=int(m["unit_cost"]),
                    )
                    for m in data.get("materials", ())
                )
            )
        case _:
            raise ValueError(f"Unsupported formula kind: {kind}")


@dataclass(frozen=True)
class YieldBand:
    """
    Acceptable output/input ratio for a stage.

    The tolerance is relative to the expected yield: an expected yield of
    1000 bp (10%) with 3000 bp (30%) tolerance accepts 700..1300 bp.
    """

    expected_bp: int
    tolerance_bp: int

    def __post_init__(self) -> None:
        if self.expected_bp < 0:
            raise ValueError(f"expected_bp cannot be negative: {self.expected_bp}")
        if not 0 <= self.tolerance_bp <= BASIS_POINTS_SCALE:
            raise ValueError(f"tolerance_bp must be within 0..10000: {self.tolerance_bp}")

    @property
    def minimum_bp(self) -> Decimal:
        return (
            Decimal(self.expected_bp)
            * (BASIS_POINTS_SCALE - self.tolerance_bp)
            / BASIS_POINTS_SCALE
        )

    @property
    def maximum_bp(self) -> Decimal:
        return (
            Decimal(self.expected_bp)
            * (BASIS_POINTS_SCALE + self.tolerance_bp)
            / BASIS_POINTS_SCALE
        )

    def contains(self, yield_bp: Decimal) -> bool:
        return self.minimum_bp <= yield_bp <= self.maximum_bp


@dataclass(frozen=True)
class YieldWarning:
    """Non-fatal flag: a stage yielded outside its configured band."""

    stage_index: int
    stage_type: str
    yield_bp: int
    expected_bp: int
    minimum_bp: Decimal
    maximum_bp: Decimal

    @property
    def message(self) -> str:
        return (
            f"Stage {self.stage_index} ({self.stage_type}) yield {self.yield_bp} bp "
            f"outside {self.minimum_bp:.0f}..{self.maximum_bp:.0f} bp "
            f"(expected {self.expected_bp} bp)"
        )


@dataclass(frozen=True)
class StageInput:
    """
    One production stage to be costed.

    required_kind, when set, is the formula kind the stage definition
    demands; a formula of another kind is rejected.
    """

    stage_type: str
    input_qty: Decimal
    output_qty: Decimal
    formula: StageFormula
    waste_bp: int = 0
    yield_band: YieldBand | None = None
    required_kind: FormulaKind | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_qty", to_quantity(self.input_qty))
        object.__setattr__(self, "output_qty", to_quantity(self.output_qty))


@dataclass(frozen=True)
class StageResult:
    """Ephemeral cost result of one stage within a rollup."""

    stage_index: int
    stage_type: str
    formula_kind: FormulaKind
    input_qty: Decimal
    output_qty: Decimal
    waste_bp: int
    stage_cost: int
    wip_before: int
    wip_after: int
    yield_bp: int
    warning: YieldWarning | None = None


@dataclass(frozen=True)
class CostRollup:
    """Result of propagating WIP cost through every stage of a run."""

    stage_results: tuple[StageResult, ...]
    opening_wip: int
    final_wip: int
    output_qty: Decimal
    unit_cost: int

    @property
    def warnings(self) -> tuple[YieldWarning, ...]:
        return tuple(r.warning for r in self.stage_results if r.warning is not None)

    @property
    def total_stage_cost(self) -> int:
        return sum(r.stage_cost for r in self.stage_results)

    def cost_by_kind(self, kind: FormulaKind) -> int:
        return sum(r.stage_cost for r in self.stage_results if r.formula_kind == kind)
