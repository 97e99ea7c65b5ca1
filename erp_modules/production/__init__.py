"""Production module: multi-stage runs costed into finished goods."""

from erp_modules.production.models import (
    ConsumedMaterial,
    MaterialRequest,
    ProductionRunRequest,
    ProductionRunResult,
    StageRequest,
)
from erp_modules.production.service import ProductionService

__all__ = [
    "ConsumedMaterial",
    "MaterialRequest",
    "ProductionRunRequest",
    "ProductionRunResult",
    "ProductionService",
    "StageRequest",
]
