"""
Module: erp_modules.sales.orm
Responsibility: SQLAlchemy ORM persistence for customer invoices and their
    lines.  Written by the sales workflow and by the recurring refill
    scheduler.  Maps to the frozen DTOs in sales.models.

Invariants enforced:
    - invoice_number is unique (SO-{year}-{seq}, SO-REFILL-{year}-{seq}).
    - All amounts are integer minor units (BIGINT) -- NEVER float.
    - Each line stores the Line Calculator outputs it was posted with, so
      the invoice can be re-rendered without recomputation.
    - journal_entry_id links the invoice to its posted entry; the entry's
      reference is the invoice number.

Failure modes:
    - IntegrityError on duplicate invoice_number.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_engines.line_calculator import DocumentTotals
from erp_kernel.db.base import TrackedBase, UUIDString


class InvoiceModel(TrackedBase):
    """
    ORM model for a customer invoice.

    Maps to: erp_modules.sales.models.Invoice (frozen dataclass).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        Index("idx_invoice_customer", "customer_id"),
        Index("idx_invoice_contract", "contract_id"),
        Index("idx_invoice_date", "invoice_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    invoice_kind: Mapped[str] = mapped_column(String(20), nullable=False, default="sale")
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("service_contracts.id"), nullable=True,
    )

    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cogs_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True,
    )

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLineModel.line_no",
    )

    @classmethod
    def from_totals(
        cls,
        *,
        invoice_number: str,
        invoice_kind: str,
        invoice_date: date,
        due_date: date,
        customer_id: UUID,
        totals: DocumentTotals,
        created_by_id: UUID,
        item_ids: list[UUID | None],
        descriptions: list[str | None],
        contract_id: UUID | None = None,
        cogs_by_line: list[int] | None = None,
    ) -> "InvoiceModel":
        """Build an invoice (with lines) from calculated document totals."""
        cogs_by_line = cogs_by_line or [0] * len(totals.lines)
        invoice = cls(
            invoice_number=invoice_number,
            invoice_kind=invoice_kind,
            invoice_date=invoice_date,
            due_date=due_date,
            customer_id=customer_id,
            contract_id=contract_id,
            gross_amount=totals.gross,
            discount_amount=totals.discount,
            tax_amount=totals.tax,
            total_amount=totals.total,
            cogs_amount=sum(cogs_by_line),
            created_by_id=created_by_id,
        )
        for line_no, amounts in enumerate(totals.lines, start=1):
            invoice.lines.append(
                InvoiceLineModel(
                    line_no=line_no,
                    item_id=item_ids[line_no - 1],
                    description=descriptions[line_no - 1],
                    quantity=amounts.quantity,
                    unit_price=amounts.unit_price,
                    gross_amount=amounts.gross,
                    discount_amount=amounts.discount,
                    net_amount=amounts.net,
                    tax_rate_bp=amounts.tax_rate_bp,
                    tax_amount=amounts.tax,
                    total_amount=amounts.total,
                    cogs_amount=cogs_by_line[line_no - 1],
                    created_by_id=created_by_id,
                )
            )
        return invoice

    def to_dto(self):
        """Convert ORM model to frozen Invoice DTO."""
        from erp_modules.sales.models import Invoice, InvoiceLine

        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            invoice_kind=self.invoice_kind,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            customer_id=self.customer_id,
            contract_id=self.contract_id,
            gross_amount=self.gross_amount,
            discount_amount=self.discount_amount,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            cogs_amount=self.cogs_amount,
            journal_entry_id=self.journal_entry_id,
            lines=tuple(
                InvoiceLine(
                    line_no=line.line_no,
                    item_id=line.item_id,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    gross_amount=line.gross_amount,
                    discount_amount=line.discount_amount,
                    net_amount=line.net_amount,
                    tax_rate_bp=line.tax_rate_bp,
                    tax_amount=line.tax_amount,
                    total_amount=line.total_amount,
                    cogs_amount=line.cogs_amount,
                )
                for line in self.lines
            ),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} total={self.total_amount}>"


class InvoiceLineModel(TrackedBase):
    """ORM model for one priced invoice line."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        Index("idx_invoice_line_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=True,
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cogs_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="lines")
