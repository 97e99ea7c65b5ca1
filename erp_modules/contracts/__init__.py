"""Contracts module: service contracts and recurring refill billing."""

from erp_modules.contracts.helpers import add_months, is_due
from erp_modules.contracts.models import (
    ContractStatus,
    RefillItemSpec,
    RefillOutcome,
    RefillRunResult,
    RefillStatus,
    ServiceContract,
)
from erp_modules.contracts.scheduler import RecurringBillingScheduler
from erp_modules.contracts.service import ContractService

__all__ = [
    "ContractService",
    "ContractStatus",
    "RecurringBillingScheduler",
    "RefillItemSpec",
    "RefillOutcome",
    "RefillRunResult",
    "RefillStatus",
    "ServiceContract",
    "add_months",
    "is_due",
]
