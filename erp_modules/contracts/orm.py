"""
Module: erp_modules.contracts.orm
Responsibility: SQLAlchemy ORM persistence for service contracts and their
    per-cycle refill items.  Maps to the frozen DTOs in contracts.models.

Invariants enforced:
    - contract_number is unique (AMC-{year}-{seq:05d}).
    - next_billing_date is advanced only by the recurring refill scheduler,
      one billing cycle per successful run, from its prior value.
    - contract_unit_price is integer minor units; rates are basis points.

Failure modes:
    - IntegrityError on duplicate contract_number.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString


class ServiceContractModel(TrackedBase):
    """
    ORM model for a service contract with automatic refills.

    Maps to: erp_modules.contracts.models.ServiceContract (frozen dataclass).
    """

    __tablename__ = "service_contracts"

    __table_args__ = (
        CheckConstraint("billing_frequency_months > 0", name="ck_contract_frequency_positive"),
        Index("idx_contract_due", "status", "auto_generate_refills", "next_billing_date"),
        Index("idx_contract_customer", "customer_id"),
    )

    contract_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    customer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    billing_frequency_months: Mapped[int] = mapped_column(Integer, nullable=False)
    next_billing_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_billed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    auto_generate_refills: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    suspension_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # auto_generate_refills as it was when an ACTIVE contract was suspended
    refills_on_resume: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    refill_items: Mapped[list["ContractRefillItemModel"]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContractRefillItemModel.line_no",
    )

    def to_dto(self):
        """Convert ORM model to frozen ServiceContract DTO."""
        from erp_modules.contracts.models import (
            ContractStatus,
            RefillItem,
            ServiceContract,
        )

        return ServiceContract(
            id=self.id,
            contract_number=self.contract_number,
            customer_id=self.customer_id,
            start_date=self.start_date,
            end_date=self.end_date,
            billing_frequency_months=self.billing_frequency_months,
            next_billing_date=self.next_billing_date,
            last_billed_date=self.last_billed_date,
            auto_generate_refills=self.auto_generate_refills,
            status=ContractStatus(self.status),
            suspension_reason=self.suspension_reason,
            refill_items=tuple(
                RefillItem(
                    item_id=ri.item_id,
                    quantity_per_cycle=ri.quantity_per_cycle,
                    contract_unit_price=ri.contract_unit_price,
                    discount_percent_bp=ri.discount_percent_bp,
                    tax_rate_bp=ri.tax_rate_bp,
                    description=ri.description,
                )
                for ri in self.refill_items
            ),
        )

    def __repr__(self) -> str:
        return (
            f"<ServiceContractModel {self.contract_number} status={self.status} "
            f"next={self.next_billing_date}>"
        )


class ContractRefillItemModel(TrackedBase):
    """ORM model for one item refilled every billing cycle."""

    __tablename__ = "contract_refill_items"

    __table_args__ = (
        CheckConstraint("quantity_per_cycle > 0", name="ck_refill_quantity_positive"),
        CheckConstraint("contract_unit_price >= 0", name="ck_refill_price_nonnegative"),
        Index("idx_refill_item_contract", "contract_id"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("service_contracts.id"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    quantity_per_cycle: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    contract_unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_percent_bp: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tax_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    contract: Mapped[ServiceContractModel] = relationship(back_populates="refill_items")
