"""
Pure calculation engines for the ERP kernel.

No I/O, no sessions, no clocks.  Inputs are frozen dataclasses with integer
minor-unit amounts and basis-point rates; outputs are frozen dataclasses.

Modules:
    line_calculator: gross/discount/net/tax/total per document line.
    costing: stage cost formulas and WIP carry-forward across production stages.
"""

from erp_engines.line_calculator import (
    DocumentTotals,
    LineAmounts,
    LineInput,
    aggregate_lines,
    calculate_document,
    calculate_line,
)

__all__ = [
    "DocumentTotals",
    "LineAmounts",
    "LineInput",
    "aggregate_lines",
    "calculate_document",
    "calculate_line",
]
