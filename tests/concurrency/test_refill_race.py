"""
Concurrent Recurring Billing Test.

Two scheduler runs started at the same instant for the same due contract
must produce exactly one refill invoice.  The contract row is locked when
claimed and due-ness is re-checked under the lock, so the losing run sees
the advanced next_billing_date and reports NOT_DUE.

Expected Behavior:
- Exactly one SUCCEEDED outcome across all runs
- Exactly one invoice and one journal entry for the contract
- next_billing_date advanced by exactly one cycle
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

from sqlalchemy import func, select

from erp_config import get_active_config, seed_chart_of_accounts
from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.models.inventory import ItemClass
from erp_kernel.models.journal import JournalEntry
from erp_modules.contracts import (
    ContractService,
    RecurringBillingScheduler,
    RefillItemSpec,
    RefillStatus,
)
from erp_modules.inventory import InventoryService
from erp_modules.sales.orm import InvoiceModel


pytestmark = [pytest.mark.postgres, pytest.mark.slow_locks]

BILLING_DATE = date(2024, 2, 15)


def setup_contract(session, actor_id):
    """Seed accounts, one finished good and one monthly contract; all committed."""
    config = get_active_config()
    clock = DeterministicClock()
    seed_chart_of_accounts(session, config, actor_id)
    session.commit()

    item = InventoryService(session, config, clock).create_item(
        "FD-BOX-RACE", "Freeze-dried box", ItemClass.FINISHED_GOOD, actor_id
    )
    return ContractService(session, config, clock).create_contract(
        customer_id=uuid4(),
        start_date=date(2024, 1, 15),
        billing_frequency_months=1,
        refill_items=[
            RefillItemSpec(
                item_id=item.id,
                quantity_per_cycle=Decimal("2"),
                contract_unit_price=150000,
                tax_rate_bp=1200,
            )
        ],
        actor_id=actor_id,
    )


class TestConcurrentRefillRuns:

    @pytest.mark.parametrize("workers", [2, 5])
    def test_one_invoice_per_cycle(self, pg_session_factory, workers):
        actor_id = uuid4()
        setup_session = pg_session_factory()
        contract = setup_contract(setup_session, actor_id)

        barrier = Barrier(workers)

        def run_scheduler():
            session = pg_session_factory()
            scheduler = RecurringBillingScheduler(
                session, get_active_config(), DeterministicClock()
            )
            barrier.wait()
            result = scheduler.run_due_refills(actor_id, as_of=BILLING_DATE)
            return [o.status for o in result.outcomes]

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(run_scheduler) for _ in range(workers)]
            statuses = [s for f in futures for s in f.result(timeout=60)]

        assert statuses.count(RefillStatus.SUCCEEDED) == 1
        assert RefillStatus.FAILED not in statuses

        check = pg_session_factory()
        invoices = check.execute(
            select(func.count(InvoiceModel.id)).where(InvoiceModel.contract_id == contract.id)
        ).scalar_one()
        entries = check.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.reference.like("SO-REFILL-%")
            )
        ).scalar_one()
        assert invoices == 1
        assert entries == 1

        refreshed = ContractService(check, get_active_config(), DeterministicClock()).get_contract(
            contract.id
        )
        assert refreshed.next_billing_date == date(2024, 3, 15)
        assert refreshed.last_billed_date == BILLING_DATE
