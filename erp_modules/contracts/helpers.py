"""
Contracts helpers -- pure date arithmetic and the due predicate.
"""

from __future__ import annotations

import calendar
from datetime import date

from erp_modules.contracts.models import ContractStatus


def add_months(start: date, months: int) -> date:
    """
    ``start`` plus ``months`` calendar months, clamped to month end.

    Jan 31 + 1 -> Feb 28 (Feb 29 in leap years); Mar 15 + 1 -> Apr 15.
    """
    if months < 0:
        raise ValueError(f"months must not be negative, got {months}")
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def is_due(contract, as_of: date) -> bool:
    """
    True when ``contract`` should be billed on ``as_of``.

    Works on the ORM model and the DTO alike.  Mirrors the selection in
    ``RecurringBillingScheduler.due_contract_ids``; end dates are handled by
    ``ContractService.expire_contracts``, not here.
    """
    if ContractStatus(contract.status) != ContractStatus.ACTIVE:
        return False
    if not contract.auto_generate_refills or contract.next_billing_date is None:
        return False
    return contract.next_billing_date <= as_of
