"""
Sales Domain Models (``erp_modules.sales.models``).

Frozen request and result objects for customer invoicing.  Money is integer
minor units, rates are basis points, quantities Decimal.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from erp_engines.line_calculator import DocumentTotals


@dataclass(frozen=True)
class SaleLineRequest:
    """
    One line of a sale.

    item_id None is a non-stock charge: no depletion, no COGS.
    """

    item_id: UUID | None
    quantity: Decimal
    unit_price: int
    discount_percent_bp: int | None = None
    discount_amount: int | None = None
    tax_rate_bp: int = 0
    tax_account_code: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class InvoiceLine:
    line_no: int
    item_id: UUID | None
    description: str | None
    quantity: Decimal
    unit_price: int
    gross_amount: int
    discount_amount: int
    net_amount: int
    tax_rate_bp: int
    tax_amount: int
    total_amount: int
    cogs_amount: int = 0


@dataclass(frozen=True)
class Invoice:
    id: UUID
    invoice_number: str
    invoice_kind: str
    invoice_date: date
    due_date: date
    customer_id: UUID
    contract_id: UUID | None
    gross_amount: int
    discount_amount: int
    tax_amount: int
    total_amount: int
    cogs_amount: int
    journal_entry_id: UUID | None
    lines: tuple[InvoiceLine, ...] = ()


@dataclass(frozen=True)
class SaleResult:
    invoice_id: UUID
    invoice_number: str
    totals: DocumentTotals
    cogs_total: int
    journal_entry_id: UUID
