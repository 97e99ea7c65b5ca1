"""
Invoice posting patterns shared by sales and recurring refills.

Revenue side of an invoice::

    Dr  accounts receivable   total
    Dr  sales discounts       discount        (when non-zero)
    Cr  revenue               gross
    Cr  tax account(s)        tax per account (when non-zero)

Balanced because total + discount == gross + tax.

Cost side of a stocked sale::

    Dr  cost of goods sold    sum of FIFO cost
    Cr  item asset account(s) FIFO cost per account
"""

from __future__ import annotations

from collections.abc import Mapping

from erp_config.schema import LedgerAccounts
from erp_engines.line_calculator import DocumentTotals
from erp_kernel.domain.journal import PostingLine, net_lines


def build_invoice_entry_lines(
    totals: DocumentTotals,
    accounts: LedgerAccounts,
    revenue_account: str,
    memo: str | None = None,
) -> list[PostingLine]:
    lines = [
        PostingLine.dr(accounts.accounts_receivable, totals.total, memo=memo),
        PostingLine.dr(accounts.sales_discounts, totals.discount, memo=memo),
        PostingLine.cr(revenue_account, totals.gross, memo=memo),
    ]
    lines.extend(
        PostingLine.cr(account, amount, memo=memo)
        for account, amount in totals.tax_by_account.items()
    )
    return net_lines(lines)


def build_cogs_lines(
    cost_by_asset_account: Mapping[str, int],
    accounts: LedgerAccounts,
    memo: str | None = None,
) -> list[PostingLine]:
    total = sum(cost_by_asset_account.values())
    if total == 0:
        return []
    lines = [PostingLine.dr(accounts.cost_of_goods_sold, total, memo=memo)]
    lines.extend(
        PostingLine.cr(account, amount, memo=memo)
        for account, amount in sorted(cost_by_asset_account.items())
    )
    return net_lines(lines)
