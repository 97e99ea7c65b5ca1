"""
Costing - stage formulas and WIP cost propagation for production runs.
"""

from erp_engines.costing.propagation import (
    carry_forward,
    evaluate_yield,
    propagate,
    stage_cost,
)
from erp_engines.costing.stages import (
    CostRollup,
    FormulaKind,
    MaterialDriven,
    MaterialLine,
    StageFormula,
    StageInput,
    StageResult,
    TimeDriven,
    YieldBand,
    YieldWarning,
    formula_from_dict,
)

__all__ = [
    "CostRollup",
    "FormulaKind",
    "MaterialDriven",
    "MaterialLine",
    "StageFormula",
    "StageInput",
    "StageResult",
    "TimeDriven",
    "YieldBand",
    "YieldWarning",
    "carry_forward",
    "evaluate_yield",
    "formula_from_dict",
    "propagate",
    "stage_cost",
]
