"""
Contracts Module Service (``erp_modules.contracts.service``).

Responsibility
--------------
Service contract lifecycle: creation with refill items, suspension,
reactivation, cancellation and expiry.  Billing itself is done by
``RecurringBillingScheduler``; this service only sets up and gates it.

State machine::

    ACTIVE --suspend--> SUSPENDED --reactivate--> ACTIVE
    ACTIVE/SUSPENDED --cancel--> CANCELLED
    ACTIVE --expire_contracts(end_date <= as_of)--> EXPIRED

Invariants
----------
- Each public method owns its transaction boundary (commit / rollback).
- A suspended, cancelled or expired contract has auto_generate_refills
  turned off, so the scheduler's due predicate excludes it.
- next_billing_date starts one billing cycle after start_date.
- Reactivation restores the auto_generate_refills value the contract had
  when it was suspended.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config.schema import ErpConfiguration
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.money import to_quantity, validate_basis_points, validate_minor_units
from erp_kernel.exceptions import (
    ContractNotFoundError,
    ContractStateError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.inventory import Item
from erp_modules.contracts.helpers import add_months
from erp_modules.contracts.models import ContractStatus, RefillItemSpec, ServiceContract
from erp_modules.contracts.orm import ContractRefillItemModel, ServiceContractModel
from erp_modules.document_numbers import next_document_number

logger = get_logger("modules.contracts.service")


class ContractService:
    """
    Manages service contracts.

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

    def create_contract(
        self,
        customer_id: UUID,
        start_date: date,
        billing_frequency_months: int,
        refill_items: Sequence[RefillItemSpec],
        actor_id: UUID,
        end_date: date | None = None,
        auto_generate_refills: bool = True,
    ) -> ServiceContract:
        """
        Create an ACTIVE contract numbered ``AMC-{year}-{seq:05d}``.

        Raises:
            ValueError: billing_frequency_months < 1 or end_date before start.
            ItemNotFoundError: a refill item does not exist.
            InvalidQuantityError: a refill quantity is not positive.
        """
        if billing_frequency_months < 1:
            raise ValueError(
                f"billing_frequency_months must be at least 1, got {billing_frequency_months}"
            )
        if end_date is not None and end_date < start_date:
            raise ValueError(f"end_date {end_date} is before start_date {start_date}")

        try:
            contract = ServiceContractModel(
                contract_number=next_document_number(
                    self._session,
                    ServiceContractModel.contract_number,
                    self._config.billing.contract_prefix,
                    start_date.year,
                ),
                customer_id=customer_id,
                start_date=start_date,
                end_date=end_date,
                billing_frequency_months=billing_frequency_months,
                next_billing_date=add_months(start_date, billing_frequency_months),
                last_billed_date=None,
                auto_generate_refills=auto_generate_refills,
                status=ContractStatus.ACTIVE.value,
                created_by_id=actor_id,
            )
            for line_no, spec in enumerate(refill_items, start=1):
                contract.refill_items.append(self._refill_item(line_no, spec, actor_id))
            self._session.add(contract)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "contract_created",
            extra={
                "contract_id": str(contract.id),
                "contract_number": contract.contract_number,
                "next_billing_date": contract.next_billing_date,
                "refill_item_count": len(contract.refill_items),
            },
        )
        return contract.to_dto()

    def get_contract(self, contract_id: UUID) -> ServiceContract:
        return self._load(contract_id).to_dto()

    def suspend_contract(self, contract_id: UUID, reason: str, actor_id: UUID) -> ServiceContract:
        """ACTIVE/SUSPENDED -> SUSPENDED; stops automatic refills."""
        return self._transition(
            contract_id,
            actor_id,
            action="suspend",
            allowed_from={ContractStatus.ACTIVE, ContractStatus.SUSPENDED},
            new_status=ContractStatus.SUSPENDED,
            auto_generate_refills=False,
            suspension_reason=reason,
        )

    def reactivate_contract(self, contract_id: UUID, actor_id: UUID) -> ServiceContract:
        """
        SUSPENDED -> ACTIVE at the stored next billing date.

        Automatic refills resume only if they were on when the contract was
        suspended.
        """
        return self._transition(
            contract_id,
            actor_id,
            action="reactivate",
            allowed_from={ContractStatus.SUSPENDED},
            new_status=ContractStatus.ACTIVE,
            auto_generate_refills=None,
            suspension_reason=None,
        )

    def cancel_contract(self, contract_id: UUID, actor_id: UUID) -> ServiceContract:
        return self._transition(
            contract_id,
            actor_id,
            action="cancel",
            allowed_from={ContractStatus.ACTIVE, ContractStatus.SUSPENDED},
            new_status=ContractStatus.CANCELLED,
            auto_generate_refills=False,
            suspension_reason=None,
        )

    def expire_contracts(self, as_of: date, actor_id: UUID) -> list[str]:
        """Expire ACTIVE contracts whose end_date <= as_of.  Returns their numbers."""
        try:
            contracts = list(
                self._session.execute(
                    select(ServiceContractModel)
                    .where(
                        ServiceContractModel.status == ContractStatus.ACTIVE.value,
                        ServiceContractModel.end_date.is_not(None),
                        ServiceContractModel.end_date <= as_of,
                    )
                    .order_by(ServiceContractModel.contract_number)
                    .with_for_update()
                ).scalars()
            )
            for contract in contracts:
                contract.status = ContractStatus.EXPIRED.value
                contract.auto_generate_refills = False
                contract.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        expired = [c.contract_number for c in contracts]
        logger.info(
            "contracts_expired",
            extra={"as_of": as_of, "count": len(expired), "contract_numbers": expired},
        )
        return expired

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load(self, contract_id: UUID) -> ServiceContractModel:
        contract = self._session.get(ServiceContractModel, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def _refill_item(
        self, line_no: int, spec: RefillItemSpec, actor_id: UUID
    ) -> ContractRefillItemModel:
        if self._session.get(Item, spec.item_id) is None:
            raise ItemNotFoundError(str(spec.item_id))
        quantity = to_quantity(spec.quantity_per_cycle)
        if quantity <= 0:
            raise InvalidQuantityError(str(quantity), "contract refill")
        validate_minor_units(spec.contract_unit_price, "contract_unit_price")
        if spec.discount_percent_bp is not None:
            validate_basis_points(spec.discount_percent_bp, "discount_percent_bp", maximum=10000)
        validate_basis_points(spec.tax_rate_bp, "tax_rate_bp", maximum=10000)
        return ContractRefillItemModel(
            line_no=line_no,
            item_id=spec.item_id,
            quantity_per_cycle=quantity,
            contract_unit_price=spec.contract_unit_price,
            discount_percent_bp=spec.discount_percent_bp,
            tax_rate_bp=spec.tax_rate_bp,
            description=spec.description,
            created_by_id=actor_id,
        )

    def _transition(
        self,
        contract_id: UUID,
        actor_id: UUID,
        *,
        action: str,
        allowed_from: set[ContractStatus],
        new_status: ContractStatus,
        auto_generate_refills: bool | None,
        suspension_reason: str | None,
    ) -> ServiceContract:
        """
        Apply a status change under a row lock.

        ``auto_generate_refills=None`` restores the flag saved when the
        contract left ACTIVE for SUSPENDED.
        """
        try:
            contract = self._session.execute(
                select(ServiceContractModel)
                .where(ServiceContractModel.id == contract_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if contract is None:
                raise ContractNotFoundError(str(contract_id))

            current = ContractStatus(contract.status)
            if current not in allowed_from:
                raise ContractStateError(contract.contract_number, current.value, action)

            if new_status is ContractStatus.SUSPENDED and current is ContractStatus.ACTIVE:
                contract.refills_on_resume = contract.auto_generate_refills
            if auto_generate_refills is None:
                auto_generate_refills = contract.refills_on_resume is not False
            if new_status is not ContractStatus.SUSPENDED:
                contract.refills_on_resume = None

            contract.status = new_status.value
            contract.auto_generate_refills = auto_generate_refills
            contract.suspension_reason = suspension_reason
            contract.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "contract_status_changed",
            extra={
                "contract_number": contract.contract_number,
                "from_status": current.value,
                "to_status": new_status.value,
                "action": action,
            },
        )
        return contract.to_dto()
