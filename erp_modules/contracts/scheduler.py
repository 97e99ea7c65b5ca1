"""
Recurring Billing Scheduler (``erp_modules.contracts.scheduler``).

Responsibility
--------------
Generates one refill invoice per due service contract and advances the
contract's billing cadence by exactly one cycle.

Each contract is its own unit of work: it is claimed with
``SELECT ... FOR UPDATE``, the due predicate is re-checked under the lock,
and the invoice, its journal entry and the cadence update commit together.
A failure rolls back that contract only; the rest of the run continues.

Idempotency
-----------
A successful refill moves ``next_billing_date`` forward, so a second run
with the same ``as_of`` (or a concurrent run that blocked on the lock) sees
the contract as no longer due.  Each contract is billed at most once per
run; a contract more than one cycle behind is caught up by later runs.

Usage::

    scheduler = RecurringBillingScheduler(session, config, clock)
    result = scheduler.run_due_refills(actor_id=system_actor)
    print(result.succeeded, result.failed)
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config.schema import ErpConfiguration
from erp_engines.line_calculator import LineInput, calculate_document
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.services.journal_poster import JournalPoster
from erp_modules.contracts.helpers import add_months, is_due
from erp_modules.contracts.models import (
    ContractStatus,
    RefillOutcome,
    RefillRunResult,
    RefillStatus,
)
from erp_modules.contracts.orm import ServiceContractModel
from erp_modules.document_numbers import next_document_number
from erp_modules.sales.orm import InvoiceModel
from erp_modules.sales.posting import build_invoice_entry_lines

logger = get_logger("modules.contracts.scheduler")


class RecurringBillingScheduler:
    """
    Bills due service contracts.

    Transaction boundary: one commit (or rollback) per contract.
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
        self._poster = JournalPoster(session, self._clock)

    def due_contract_ids(self, as_of: date) -> list[UUID]:
        """Ids of contracts due on ``as_of``, oldest billing date first."""
        stmt = (
            select(ServiceContractModel.id)
            .where(
                ServiceContractModel.status == ContractStatus.ACTIVE.value,
                ServiceContractModel.auto_generate_refills.is_(True),
                ServiceContractModel.next_billing_date.is_not(None),
                ServiceContractModel.next_billing_date <= as_of,
            )
            .order_by(
                ServiceContractModel.next_billing_date,
                ServiceContractModel.contract_number,
            )
        )
        return list(self._session.execute(stmt).scalars())

    def run_due_refills(self, actor_id: UUID, as_of: date | None = None) -> RefillRunResult:
        """
        Bill every contract due on ``as_of`` (default: the clock's date).

        Returns one RefillOutcome per contract selected.  Never raises for a
        single contract's failure; that contract is reported as FAILED.
        """
        as_of = as_of or self._clock.today()
        contract_ids = self.due_contract_ids(as_of)
        # End the read transaction so each contract gets its own.
        self._session.commit()

        logger.info(
            "refill_run_started",
            extra={"as_of": as_of, "due_count": len(contract_ids)},
        )

        outcomes = [self._process(contract_id, as_of, actor_id) for contract_id in contract_ids]
        result = RefillRunResult(as_of=as_of, outcomes=tuple(outcomes))

        logger.info(
            "refill_run_completed",
            extra={
                "as_of": as_of,
                "total": result.total,
                "succeeded": result.succeeded,
                "skipped": result.skipped,
                "not_due": result.not_due,
                "failed": result.failed,
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Per-contract unit of work
    # -------------------------------------------------------------------------

    def _process(self, contract_id: UUID, as_of: date, actor_id: UUID) -> RefillOutcome:
        contract_number = str(contract_id)
        try:
            contract = self._claim(contract_id)
            contract_number = contract.contract_number if contract else contract_number

            with LogContext.bind(reference=contract_number, actor_id=str(actor_id)):
                if contract is None or not is_due(contract, as_of):
                    self._session.rollback()
                    logger.info("refill_not_due", extra={"contract_number": contract_number})
                    return RefillOutcome(
                        contract_id=contract_id,
                        contract_number=contract_number,
                        status=RefillStatus.NOT_DUE,
                        next_billing_date=contract.next_billing_date if contract else None,
                    )

                if not contract.refill_items:
                    self._session.rollback()
                    logger.warning(
                        "refill_skipped_no_items",
                        extra={"contract_number": contract_number},
                    )
                    return RefillOutcome(
                        contract_id=contract_id,
                        contract_number=contract_number,
                        status=RefillStatus.SKIPPED,
                        next_billing_date=contract.next_billing_date,
                        error_message="contract has no refill items",
                    )

                outcome = self._bill(contract, as_of, actor_id)
                self._session.commit()
                logger.info(
                    "refill_invoice_generated",
                    extra={
                        "contract_number": contract_number,
                        "invoice_number": outcome.invoice_number,
                        "invoice_total": outcome.invoice_total,
                        "billed_for": outcome.billed_for,
                        "next_billing_date": outcome.next_billing_date,
                    },
                )
                return outcome
        except Exception as exc:
            self._session.rollback()
            error_code = getattr(exc, "code", type(exc).__name__)
            logger.error(
                "refill_failed",
                extra={"contract_number": contract_number, "error_code": error_code},
                exc_info=True,
            )
            return RefillOutcome(
                contract_id=contract_id,
                contract_number=contract_number,
                status=RefillStatus.FAILED,
                error_code=error_code,
                error_message=str(exc),
            )

    def _claim(self, contract_id: UUID) -> ServiceContractModel | None:
        return self._session.execute(
            select(ServiceContractModel)
            .where(ServiceContractModel.id == contract_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _bill(
        self,
        contract: ServiceContractModel,
        as_of: date,
        actor_id: UUID,
    ) -> RefillOutcome:
        accounts = self._config.accounts
        billing = self._config.billing
        billed_for = contract.next_billing_date

        totals = calculate_document(
            [
                LineInput(
                    quantity=item.quantity_per_cycle,
                    unit_price=item.contract_unit_price,
                    discount_percent_bp=item.discount_percent_bp,
                    tax_rate_bp=item.tax_rate_bp,
                    description=item.description,
                )
                for item in contract.refill_items
            ],
            default_tax_account=accounts.sales_tax,
        )

        number = next_document_number(
            self._session,
            InvoiceModel.invoice_number,
            billing.refill_invoice_prefix,
            as_of.year,
        )
        invoice = InvoiceModel.from_totals(
            invoice_number=number,
            invoice_kind="refill",
            invoice_date=as_of,
            due_date=as_of + timedelta(days=billing.payment_terms_days),
            customer_id=contract.customer_id,
            totals=totals,
            created_by_id=actor_id,
            item_ids=[item.item_id for item in contract.refill_items],
            descriptions=[
                item.description or f"Refill {contract.contract_number} line {item.line_no}"
                for item in contract.refill_items
            ],
            contract_id=contract.id,
        )
        self._session.add(invoice)

        entry = self._poster.post(
            entry_date=as_of,
            description=f"Refill invoice {number} for contract {contract.contract_number}",
            lines=build_invoice_entry_lines(totals, accounts, accounts.refill_revenue, memo=number),
            actor_id=actor_id,
            reference=number,
        )
        invoice.journal_entry_id = entry.id

        contract.next_billing_date = add_months(billed_for, contract.billing_frequency_months)
        contract.last_billed_date = as_of
        contract.updated_by_id = actor_id
        self._session.flush()

        return RefillOutcome(
            contract_id=contract.id,
            contract_number=contract.contract_number,
            status=RefillStatus.SUCCEEDED,
            billed_for=billed_for,
            next_billing_date=contract.next_billing_date,
            invoice_number=number,
            invoice_total=totals.total,
            journal_entry_id=entry.id,
        )
