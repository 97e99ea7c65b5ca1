"""
Cost Propagation Engine - roll WIP cost forward through production stages.

Responsibility:
    Computes each stage's cost from its formula variant and carries the
    running work-in-process cost forward:

        WIP_after = round(WIP_before * (10000 - waste_bp) / 10000 + stage_cost)

    Inherited cost shrinks in proportion to waste (lost material carries no
    forward value) while the full cost of the current stage is always added.
    The final WIP divided by the final output quantity is the unit cost of
    the finished-good layer.

Architecture position:
    Engines - pure functions, zero I/O.

Invariants enforced:
    - One rounding per computed quantity (erp_kernel.domain.money).
    - Yield outside a stage's band is returned as a YieldWarning and never
      raises.

Failure modes:
    - InvalidStageError: no stages, non-positive input, negative output,
      waste outside 0..10000, formula kind not allowed by the stage
      definition, or zero final output.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from erp_engines.costing.stages import (
    CostRollup,
    MaterialDriven,
    StageFormula,
    StageInput,
    StageResult,
    TimeDriven,
    YieldBand,
    YieldWarning,
)
from erp_kernel.domain.money import BASIS_POINTS_SCALE, round_half_up
from erp_kernel.exceptions import InvalidStageError
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.costing")

_MINUTES_PER_HOUR = 60


def stage_cost(formula: StageFormula) -> int:
    """Cost of one stage in minor units, dispatched on the formula variant."""
    match formula:
        case TimeDriven(hourly_rate=rate, duration_minutes=minutes):
            return round_half_up(Decimal(rate) * minutes / _MINUTES_PER_HOUR)
        case MaterialDriven(materials=materials):
            return round_half_up(sum((m.quantity * m.unit_cost for m in materials), Decimal(0)))
        case _:
            raise InvalidStageError(None, f"unsupported formula {type(formula).__name__}")


def carry_forward(wip_before: int, waste_bp: int, cost: int) -> int:
    """``round(wip_before * (1 - waste) + cost)`` with a single rounding."""
    if not 0 <= waste_bp <= BASIS_POINTS_SCALE:
        raise InvalidStageError(None, f"waste_bp must be within 0..10000, got {waste_bp}")
    retained = Decimal(wip_before) * (BASIS_POINTS_SCALE - waste_bp) / BASIS_POINTS_SCALE
    return round_half_up(retained + cost)


def evaluate_yield(
    input_qty: Decimal,
    output_qty: Decimal,
    band: YieldBand | None,
    stage_type: str = "",
    stage_index: int = 0,
) -> tuple[int, YieldWarning | None]:
    """
    Return ``(yield_bp, warning)`` for one stage.

    The band comparison uses the exact ratio; the reported yield_bp is
    rounded for display.
    """
    exact = output_qty / input_qty * BASIS_POINTS_SCALE
    yield_bp = round_half_up(exact)
    if band is None or band.contains(exact):
        return yield_bp, None
    return yield_bp, YieldWarning(
        stage_index=stage_index,
        stage_type=stage_type,
        yield_bp=yield_bp,
        expected_bp=band.expected_bp,
        minimum_bp=band.minimum_bp,
        maximum_bp=band.maximum_bp,
    )


def _validate_stage(index: int, stage: StageInput) -> None:
    if stage.input_qty <= 0:
        raise InvalidStageError(stage.stage_type, f"stage {index} input_qty must be positive")
    if stage.output_qty < 0:
        raise InvalidStageError(stage.stage_type, f"stage {index} output_qty cannot be negative")
    if not 0 <= stage.waste_bp <= BASIS_POINTS_SCALE:
        raise InvalidStageError(
            stage.stage_type, f"stage {index} waste_bp must be within 0..10000"
        )
    if stage.required_kind is not None and stage.formula.kind != stage.required_kind:
        raise InvalidStageError(
            stage.stage_type,
            f"expects a {stage.required_kind.value} formula, got {stage.formula.kind.value}",
        )


def propagate(stages: Sequence[StageInput], opening_wip: int = 0) -> CostRollup:
    """
    Propagate cost through ``stages`` in order.

    Preconditions:
        - At least one stage; the last stage produces a positive quantity.
    Postconditions:
        - ``final_wip`` equals the last stage's ``wip_after``.
        - ``unit_cost == round(final_wip / output_qty)``.
        - Yield warnings are attached to their stage results.
    """
    if not stages:
        raise InvalidStageError(None, "a production run needs at least one stage")
    if opening_wip < 0:
        raise InvalidStageError(None, f"opening_wip cannot be negative: {opening_wip}")

    wip = opening_wip
    results: list[StageResult] = []
    for index, stage in enumerate(stages):
        _validate_stage(index, stage)
        cost = stage_cost(stage.formula)
        wip_after = carry_forward(wip, stage.waste_bp, cost)
        yield_bp, warning = evaluate_yield(
            stage.input_qty, stage.output_qty, stage.yield_band, stage.stage_type, index
        )
        if warning is not None:
            logger.warning(
                "stage_yield_out_of_band",
                extra={
                    "stage_index": index,
                    "stage_type": stage.stage_type,
                    "yield_bp": yield_bp,
                    "expected_bp": warning.expected_bp,
                },
            )
        results.append(
            StageResult(
                stage_index=index,
                stage_type=stage.stage_type,
                formula_kind=stage.formula.kind,
                input_qty=stage.input_qty,
                output_qty=stage.output_qty,
                waste_bp=stage.waste_bp,
                stage_cost=cost,
                wip_before=wip,
                wip_after=wip_after,
                yield_bp=yield_bp,
                warning=warning,
            )
        )
        wip = wip_after

    output_qty = stages[-1].output_qty
    if output_qty <= 0:
        raise InvalidStageError(stages[-1].stage_type, "final stage produced no output")

    rollup = CostRollup(
        stage_results=tuple(results),
        opening_wip=opening_wip,
        final_wip=wip,
        output_qty=output_qty,
        unit_cost=round_half_up(Decimal(wip) / output_qty),
    )
    logger.info(
        "cost_rollup_completed",
        extra={
            "stage_count": len(results),
            "final_wip": rollup.final_wip,
            "output_qty": output_qty,
            "unit_cost": rollup.unit_cost,
            "warning_count": len(rollup.warnings),
        },
    )
    return rollup
