"""
Line Calculator - turn quantity/price/discount/tax inputs into line amounts.

Pure functions with no I/O.  Amounts are integer minor units, rates are
integer basis points, and every computed quantity is rounded exactly once
(half-up) through erp_kernel.domain.money.

Per line:
    gross    = round(quantity * unit_price)
    discount = discount_amount if given, else round(gross * discount_percent_bp / 10000)
    net      = gross - discount
    tax      = round(net * tax_rate_bp / 10000)        # always on net
    total    = net + tax

Document totals sum each component independently and group tax by the
ledger account it posts to.

Usage:
    from decimal import Decimal
    from erp_engines.line_calculator import LineInput, calculate_line

    amounts = calculate_line(
        LineInput(
            quantity=Decimal("2"),
            unit_price=250000,
            discount_percent_bp=1000,
            tax_rate_bp=1200,
        )
    )
    amounts.total  # 504000
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from erp_kernel.domain.money import (
    BASIS_POINTS_SCALE,
    apply_basis_points,
    extend,
    to_quantity,
)
from erp_kernel.exceptions import InvalidDiscountError, InvalidLineInputError
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.line_calculator")


@dataclass(frozen=True)
class LineInput:
    """
    One document line to be priced.

    discount_amount (fixed, minor units) takes precedence over
    discount_percent_bp when both are supplied.
    tax_account_code routes this line's tax; None means the document default.
    """

    quantity: Decimal | int
    unit_price: int
    discount_percent_bp: int | None = None
    discount_amount: int | None = None
    tax_rate_bp: int = 0
    tax_account_code: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class LineAmounts:
    """Calculated amounts for one line, all in minor units."""

    quantity: Decimal
    unit_price: int
    gross: int
    discount: int
    net: int
    tax: int
    total: int
    tax_rate_bp: int = 0
    tax_account_code: str | None = None


@dataclass(frozen=True)
class DocumentTotals:
    """
    Independently summed totals across a document's lines.

    tax_by_account maps ledger account code -> tax minor units and only
    contains accounts with non-zero tax.
    """

    lines: tuple[LineAmounts, ...]
    gross: int
    discount: int
    net: int
    tax: int
    total: int
    tax_by_account: Mapping[str, int] = field(default_factory=dict)

    @property
    def line_count(self) -> int:
        return len(self.lines)


def _check_int(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidLineInputError(field_name, repr(value), "must be an integer")
    return value


def _validate(line: LineInput) -> Decimal:
    try:
        quantity = to_quantity(line.quantity)
    except TypeError as exc:
        raise InvalidLineInputError("quantity", repr(line.quantity), str(exc)) from exc
    if quantity < 0:
        raise InvalidLineInputError("quantity", str(quantity), "must not be negative")

    if _check_int(line.unit_price, "unit_price") < 0:
        raise InvalidLineInputError("unit_price", str(line.unit_price), "must not be negative")

    for name in ("discount_percent_bp", "tax_rate_bp"):
        rate = getattr(line, name)
        if rate is None:
            continue
        _check_int(rate, name)
        if rate < 0 or rate > BASIS_POINTS_SCALE:
            raise InvalidLineInputError(
                name, str(rate), f"must be between 0 and {BASIS_POINTS_SCALE}"
            )

    if line.discount_amount is not None:
        _check_int(line.discount_amount, "discount_amount")

    return quantity


def calculate_line(line: LineInput) -> LineAmounts:
    """
    Price a single line.

    Raises:
        InvalidLineInputError: negative quantity/price, non-integer amounts,
            or a rate outside 0..10000 basis points.
        InvalidDiscountError: discount is negative or exceeds gross.
    """
    quantity = _validate(line)

    gross = extend(quantity, line.unit_price)

    if line.discount_amount is not None:
        discount = line.discount_amount
    elif line.discount_percent_bp:
        discount = apply_basis_points(gross, line.discount_percent_bp)
    else:
        discount = 0

    if discount < 0 or discount > gross:
        raise InvalidDiscountError(discount, gross)

    net = gross - discount
    tax = apply_basis_points(net, line.tax_rate_bp) if line.tax_rate_bp else 0

    return LineAmounts(
        quantity=quantity,
        unit_price=line.unit_price,
        gross=gross,
        discount=discount,
        net=net,
        tax=tax,
        total=net + tax,
        tax_rate_bp=line.tax_rate_bp,
        tax_account_code=line.tax_account_code,
    )


def aggregate_lines(
    lines: Sequence[LineAmounts],
    default_tax_account: str,
) -> DocumentTotals:
    """
    Sum calculated lines into document totals.

    Each component is summed on its own; totals are never re-derived from
    already-rounded line totals.
    """
    tax_by_account: dict[str, int] = {}
    for amounts in lines:
        if amounts.tax:
            account = amounts.tax_account_code or default_tax_account
            tax_by_account[account] = tax_by_account.get(account, 0) + amounts.tax

    return DocumentTotals(
        lines=tuple(lines),
        gross=sum(a.gross for a in lines),
        discount=sum(a.discount for a in lines),
        net=sum(a.net for a in lines),
        tax=sum(a.tax for a in lines),
        total=sum(a.total for a in lines),
        tax_by_account=MappingProxyType(dict(sorted(tax_by_account.items()))),
    )


def calculate_document(
    inputs: Sequence[LineInput],
    default_tax_account: str,
) -> DocumentTotals:
    """Price every line, then aggregate.  Fails on the first invalid line."""
    totals = aggregate_lines([calculate_line(line) for line in inputs], default_tax_account)
    logger.debug(
        "document_calculated",
        extra={
            "line_count": totals.line_count,
            "gross": totals.gross,
            "discount": totals.discount,
            "tax": totals.tax,
            "total": totals.total,
        },
    )
    return totals
