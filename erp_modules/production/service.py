"""
Production Module Service (``erp_modules.production.service``).

Responsibility
--------------
Completes a multi-stage production run as one unit of work:

1. Resolves every stage's definition from configuration.
2. Draws input and stage materials FIFO through ``InventoryLayerStore``.
3. Rolls WIP cost through the stages with the Cost Propagation Engine.
4. Receives the finished output as a new layer at the rollup unit cost.
5. Posts one balanced entry through ``JournalPoster``::

       Dr  output asset account        output layer value
       Cr  input asset account(s)      actual FIFO cost drawn
       Cr  overhead absorption         time-driven stage costs
       Dr/Cr production variance       remainder (waste, rounding)

Invariants
----------
- All-or-nothing: depletions, the output layer and the entry commit
  together.  Any failure rolls back the whole run.
- Yield outside a stage's band is reported on the result, never raised.
- Unknown stage types fail before any inventory is touched.

Failure Modes
-------------
- ``UnknownStageTypeError`` / ``InvalidStageError`` for bad stage input.
- ``InsufficientStockError`` when a material cannot be drawn.
- ``PostingError`` / ``PeriodLockedError`` from the poster.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy.orm import Session

from erp_config.schema import ErpConfiguration, StageDefinitionDef
from erp_engines.costing import (
    FormulaKind,
    MaterialDriven,
    MaterialLine,
    StageInput,
    TimeDriven,
    propagate,
)
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.journal import PostingLine, net_lines
from erp_kernel.domain.money import extend
from erp_kernel.exceptions import InvalidStageError, ItemNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import Item
from erp_kernel.services.journal_poster import JournalPoster
from erp_modules.production.models import (
    ConsumedMaterial,
    MaterialRequest,
    ProductionRunRequest,
    ProductionRunResult,
    StageRequest,
)
from erp_services.layer_store import DepletionResult, InventoryLayerStore

logger = get_logger("modules.production.service")


class ProductionService:
    """
    Orchestrates production runs.

    Transaction boundary: commits on success, rolls back on failure.
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

    def complete_run(self, request: ProductionRunRequest, actor_id: UUID) -> ProductionRunResult:
        """
        Cost and post a finished production run.

        Postconditions:
            - Output layer exists with unit_cost == rollup.unit_cost.
            - One balanced journal entry with reference == run_reference.
            - Session committed on success, rolled back on any failure.
        """
        if not request.stages:
            raise InvalidStageError(None, "a production run needs at least one stage")
        definitions = [self._config.stage(s.stage_type) for s in request.stages]

        logger.info(
            "production_run_started",
            extra={
                "reference": request.run_reference,
                "stage_count": len(request.stages),
                "input_material_count": len(request.input_materials),
            },
        )

        try:
            consumed: list[ConsumedMaterial] = []
            for material in request.input_materials:
                consumed.append(self._draw(material, request, actor_id, stage_index=None)[0])
            opening_wip = sum(c.cost for c in consumed)

            stage_inputs = []
            for index, (stage, definition) in enumerate(zip(request.stages, definitions)):
                formula, drawn = self._formula_for(index, stage, definition, request, actor_id)
                consumed.extend(drawn)
                stage_inputs.append(
                    StageInput(
                        stage_type=definition.stage_type,
                        input_qty=stage.input_qty,
                        output_qty=stage.output_qty,
                        formula=formula,
                        waste_bp=stage.waste_bp,
                        yield_band=definition.yield_band,
                        required_kind=definition.formula_kind,
                    )
                )

            rollup = propagate(stage_inputs, opening_wip=opening_wip)

            output_item = self._session.get(Item, request.output_item_id)
            if output_item is None:
                raise ItemNotFoundError(str(request.output_item_id))
            layer = self._layers.receive(
                item_id=output_item.id,
                quantity=rollup.output_qty,
                unit_cost=rollup.unit_cost,
                batch_number=request.output_batch_number,
                receive_date=request.production_date,
                actor_id=actor_id,
                source_reference=request.run_reference,
            )

            output_value = extend(rollup.output_qty, rollup.unit_cost)
            consumed_cost = sum(c.cost for c in consumed)
            absorbed_cost = rollup.cost_by_kind(FormulaKind.TIME_DRIVEN)
            variance = output_value - consumed_cost - absorbed_cost

            lines = self._build_lines(
                output_account=self._config.accounts.inventory_account_for(output_item),
                output_value=output_value,
                consumed=consumed,
                absorbed_cost=absorbed_cost,
                variance=variance,
                reference=request.run_reference,
            )
            entry = self._poster.post(
                entry_date=request.production_date,
                description=(
                    f"Production run {request.run_reference}: "
                    f"{output_item.sku} x {rollup.output_qty}"
                ),
                lines=lines,
                actor_id=actor_id,
                reference=request.run_reference,
            )

            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        result = ProductionRunResult(
            run_reference=request.run_reference,
            rollup=rollup,
            output_layer_id=layer.id,
            output_qty=rollup.output_qty,
            unit_cost=rollup.unit_cost,
            output_value=output_value,
            consumed_cost=consumed_cost,
            absorbed_cost=absorbed_cost,
            variance=variance,
            journal_entry_id=entry.id,
            consumed=tuple(consumed),
        )
        logger.info(
            "production_run_completed",
            extra={
                "reference": request.run_reference,
                "output_qty": rollup.output_qty,
                "unit_cost": rollup.unit_cost,
                "output_value": output_value,
                "variance": variance,
                "warning_count": len(result.warnings),
                "journal_entry_id": str(entry.id),
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _draw(
        self,
        material: MaterialRequest,
        request: ProductionRunRequest,
        actor_id: UUID,
        stage_index: int | None,
    ) -> tuple[ConsumedMaterial, DepletionResult]:
        depletion = self._layers.deplete(
            item_id=material.item_id,
            quantity=material.quantity,
            actor_id=actor_id,
            reference=request.run_reference,
            depleted_on=request.production_date,
        )
        item = self._session.get(Item, material.item_id)
        return (
            ConsumedMaterial(
                item_id=item.id,
                sku=item.sku,
                quantity=depletion.quantity,
                cost=depletion.total_cost,
                asset_account_code=self._config.accounts.inventory_account_for(item),
                stage_index=stage_index,
            ),
            depletion,
        )

    def _formula_for(
        self,
        index: int,
        stage: StageRequest,
        definition: StageDefinitionDef,
        request: ProductionRunRequest,
        actor_id: UUID,
    ):
        if stage.materials:
            drawn: list[ConsumedMaterial] = []
            lines: list[MaterialLine] = []
            for material in stage.materials:
                record, depletion = self._draw(material, request, actor_id, stage_index=index)
                drawn.append(record)
                lines.extend(
                    MaterialLine(quantity=c.quantity, unit_cost=c.unit_cost)
                    for c in depletion.consumptions
                )
            return MaterialDriven(materials=tuple(lines)), drawn

        if stage.duration_minutes is not None:
            rate = stage.hourly_rate if stage.hourly_rate is not None else definition.default_hourly_rate
            if rate is None:
                raise InvalidStageError(
                    definition.stage_type, "no hourly rate given and no default configured"
                )
            return TimeDriven(hourly_rate=rate, duration_minutes=stage.duration_minutes), []

        if definition.formula_kind == FormulaKind.MATERIAL_DRIVEN:
            return MaterialDriven(materials=()), []

        raise InvalidStageError(definition.stage_type, "time-driven stage needs duration_minutes")

    def _build_lines(
        self,
        *,
        output_account: str,
        output_value: int,
        consumed: list[ConsumedMaterial],
        absorbed_cost: int,
        variance: int,
        reference: str,
    ) -> list[PostingLine]:
        accounts = self._config.accounts
        credits_by_account: dict[str, int] = defaultdict(int)
        for material in consumed:
            credits_by_account[material.asset_account_code] += material.cost

        lines = [PostingLine.dr(output_account, output_value, memo=reference)]
        lines.extend(
            PostingLine.cr(code, amount, memo="materials consumed")
            for code, amount in sorted(credits_by_account.items())
        )
        lines.append(PostingLine.cr(accounts.overhead_absorption, absorbed_cost, memo="stage costs absorbed"))
        if variance > 0:
            lines.append(PostingLine.cr(accounts.production_variance, variance, memo="production variance"))
        elif variance < 0:
            lines.append(PostingLine.dr(accounts.production_variance, -variance, memo="production variance"))
        return net_lines(lines)
