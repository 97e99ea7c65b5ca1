"""
Contracts Domain Models (``erp_modules.contracts.models``).

Frozen value objects for service contracts and for the outcome of a
recurring refill run.  A run's outcome is data: one RefillOutcome per
contract considered, whether it was billed, skipped, no longer due, or
failed.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ContractStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RefillStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"  # no refill items; contract not advanced
    NOT_DUE = "not_due"  # no longer due once locked; silent no-op
    FAILED = "failed"


@dataclass(frozen=True)
class RefillItemSpec:
    """Input for one refill item when creating a contract."""

    item_id: UUID
    quantity_per_cycle: Decimal
    contract_unit_price: int
    discount_percent_bp: int | None = None
    tax_rate_bp: int = 0
    description: str | None = None


@dataclass(frozen=True)
class RefillItem:
    item_id: UUID
    quantity_per_cycle: Decimal
    contract_unit_price: int
    discount_percent_bp: int | None
    tax_rate_bp: int
    description: str | None


@dataclass(frozen=True)
class ServiceContract:
    id: UUID
    contract_number: str
    customer_id: UUID
    start_date: date
    end_date: date | None
    billing_frequency_months: int
    next_billing_date: date | None
    last_billed_date: date | None
    auto_generate_refills: bool
    status: ContractStatus
    suspension_reason: str | None
    refill_items: tuple[RefillItem, ...] = ()


@dataclass(frozen=True)
class RefillOutcome:
    contract_id: UUID
    contract_number: str
    status: RefillStatus
    billed_for: date | None = None
    next_billing_date: date | None = None
    invoice_number: str | None = None
    invoice_total: int = 0
    journal_entry_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class RefillRunResult:
    as_of: date
    outcomes: tuple[RefillOutcome, ...]

    def _count(self, status: RefillStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return self._count(RefillStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(RefillStatus.SKIPPED)

    @property
    def not_due(self) -> int:
        return self._count(RefillStatus.NOT_DUE)

    @property
    def failed(self) -> int:
        return self._count(RefillStatus.FAILED)

    @property
    def invoice_numbers(self) -> tuple[str, ...]:
        return tuple(o.invoice_number for o in self.outcomes if o.invoice_number)
