"""
Sales Module Service (``erp_modules.sales.service``).

Responsibility
--------------
Records a customer sale as one unit of work: prices the lines with the Line
Calculator, draws stocked items FIFO for COGS, persists the invoice and
posts a single balanced entry (revenue side + cost side, see
``erp_modules.sales.posting``).

Invariants
----------
- Pricing errors (``InvalidDiscountError``, ``InvalidLineInputError``) are
  raised before anything is written.
- Invoice, depletions and entry commit together; any failure rolls back
  all of them.
- The entry's reference is the invoice number.

Failure Modes
-------------
- ``ItemNotFoundError`` for an unknown item.
- ``InsufficientStockError`` when a stocked line cannot be filled.
- ``PostingError`` / ``PeriodLockedError`` from the poster.

Usage::

    service = SalesService(session, config, clock)
    result = service.record_sale(
        customer_id=customer_id,
        invoice_date=date(2024, 3, 5),
        lines=[SaleLineRequest(item_id=item.id, quantity=Decimal("2"),
                               unit_price=250000, discount_percent_bp=1000,
                               tax_rate_bp=1200)],
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config.schema import ErpConfiguration
from erp_engines.line_calculator import LineInput, calculate_document
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.exceptions import ItemNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import Item
from erp_kernel.services.journal_poster import JournalPoster
from erp_modules.document_numbers import next_document_number
from erp_modules.sales.models import Invoice, SaleLineRequest, SaleResult
from erp_modules.sales.orm import InvoiceModel
from erp_modules.sales.posting import build_cogs_lines, build_invoice_entry_lines
from erp_services.layer_store import InventoryLayerStore

logger = get_logger("modules.sales.service")


class SalesService:
    """
    Orchestrates customer sales.

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

    def record_sale(
        self,
        customer_id: UUID,
        invoice_date: date,
        lines: Sequence[SaleLineRequest],
        actor_id: UUID,
        invoice_number: str | None = None,
    ) -> SaleResult:
        """
        Price, invoice, relieve stock and post a sale.

        Postconditions:
            - Invoice persisted with number ``SO-{year}-{seq:05d}`` unless
              ``invoice_number`` is given.
            - One balanced entry: Dr AR / Dr discounts / Cr sales income /
              Cr tax, plus Dr COGS / Cr inventory for stocked lines.
            - Session committed on success, rolled back on any failure.
        """
        accounts = self._config.accounts
        totals = calculate_document(
            [
                LineInput(
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount_percent_bp=line.discount_percent_bp,
                    discount_amount=line.discount_amount,
                    tax_rate_bp=line.tax_rate_bp,
                    tax_account_code=line.tax_account_code,
                    description=line.description,
                )
                for line in lines
            ],
            default_tax_account=accounts.sales_tax,
        )

        try:
            number = invoice_number or next_document_number(
                self._session,
                InvoiceModel.invoice_number,
                self._config.billing.sales_invoice_prefix,
                invoice_date.year,
            )

            cogs_by_line: list[int] = []
            cost_by_account: dict[str, int] = defaultdict(int)
            for line in lines:
                cogs_by_line.append(
                    self._relieve_stock(line, number, invoice_date, actor_id, cost_by_account)
                )

            invoice = InvoiceModel.from_totals(
                invoice_number=number,
                invoice_kind="sale",
                invoice_date=invoice_date,
                due_date=invoice_date + timedelta(days=self._config.billing.payment_terms_days),
                customer_id=customer_id,
                totals=totals,
                created_by_id=actor_id,
                item_ids=[line.item_id for line in lines],
                descriptions=[line.description for line in lines],
                cogs_by_line=cogs_by_line,
            )
            self._session.add(invoice)

            entry = self._poster.post(
                entry_date=invoice_date,
                description=f"Sales invoice {number}",
                lines=[
                    *build_invoice_entry_lines(totals, accounts, accounts.sales_income, memo=number),
                    *build_cogs_lines(cost_by_account, accounts, memo=number),
                ],
                actor_id=actor_id,
                reference=number,
            )
            invoice.journal_entry_id = entry.id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        cogs_total = sum(cogs_by_line)
        logger.info(
            "sale_recorded",
            extra={
                "invoice_number": number,
                "customer_id": str(customer_id),
                "total": totals.total,
                "tax": totals.tax,
                "cogs": cogs_total,
                "journal_entry_id": str(entry.id),
            },
        )
        return SaleResult(
            invoice_id=invoice.id,
            invoice_number=number,
            totals=totals,
            cogs_total=cogs_total,
            journal_entry_id=entry.id,
        )

    def get_invoice(self, invoice_number: str) -> Invoice | None:
        model = self._session.execute(
            select(InvoiceModel).where(InvoiceModel.invoice_number == invoice_number)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def _relieve_stock(
        self,
        line: SaleLineRequest,
        reference: str,
        invoice_date: date,
        actor_id: UUID,
        cost_by_account: dict[str, int],
    ) -> int:
        if line.item_id is None:
            return 0
        item = self._session.get(Item, line.item_id)
        if item is None:
            raise ItemNotFoundError(str(line.item_id))
        if not item.is_stocked:
            return 0
        depletion = self._layers.deplete(
            item_id=item.id,
            quantity=line.quantity,
            actor_id=actor_id,
            reference=reference,
            depleted_on=invoice_date,
        )
        cost_by_account[self._config.accounts.inventory_account_for(item)] += depletion.total_cost
        return depletion.total_cost
