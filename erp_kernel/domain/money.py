"""
Module: erp_kernel.domain.money
Responsibility: Integer minor-unit money and basis-point rate primitives.
    Every other component delegates rounding here so that exactly one
    rounding rule exists in the system.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.

Invariants enforced:
    - Money is an ``int`` count of minor units (1/100 of the display unit).
      ``float`` and ``bool`` are rejected at every boundary.
    - Rates are ``int`` basis points; 10000 == 100%.
    - Every multiplicative result is rounded ONCE, half-up, to an integer.
      Fractional remainders are never carried between computations.

Failure modes:
    - TypeError when a float/bool/str is passed where minor units or basis
      points are expected.
    - ValueError when a value is outside its allowed range.
"""

from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction

BASIS_POINTS_SCALE = 10000
DEFAULT_ROUNDING = ROUND_HALF_UP
MINOR_UNITS_PER_MAJOR = 100

_INTEGER_EXPONENT = Decimal("1")


def round_half_up(value: Decimal | int | Fraction) -> int:
    """
    Round an exact intermediate value to the nearest integer, halves up.

    This is the ONLY sanctioned rounding function for computed amounts.

    Preconditions:
        - ``value`` is exact (``Decimal``, ``int`` or ``Fraction``); floats
          are rejected because they cannot represent halves reliably.
    Postconditions:
        - Returns an ``int``.  Halves round away from zero
          (2.5 -> 3, -2.5 -> -3), matching ``Decimal.ROUND_HALF_UP``.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"round_half_up requires an exact value, got {type(value).__name__}")
    if isinstance(value, int):
        return value
    if isinstance(value, Fraction):
        value = Decimal(value.numerator) / Decimal(value.denominator)
    return int(value.quantize(_INTEGER_EXPONENT, rounding=DEFAULT_ROUNDING))


def apply_basis_points(amount: int, rate_bp: int) -> int:
    """
    ``round(amount * rate_bp / 10000)``.

    Used for discount percentages, tax rates and waste reductions.
    """
    validate_minor_units(amount, "amount", allow_negative=True)
    validate_basis_points(rate_bp, "rate_bp")
    return round_half_up(Decimal(amount) * Decimal(rate_bp) / BASIS_POINTS_SCALE)


def extend(quantity: Decimal | int, unit_amount: int) -> int:
    """
    ``round(quantity * unit_amount)`` -- the extended amount of a line.

    Quantity may be fractional (e.g. 2.5 kg); the result is minor units.
    """
    validate_minor_units(unit_amount, "unit_amount", allow_negative=True)
    return round_half_up(to_quantity(quantity) * unit_amount)


def to_quantity(value: Decimal | int | str) -> Decimal:
    """Normalize a quantity to ``Decimal`` without passing through float."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Quantities must be Decimal, int or str, got {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def validate_minor_units(
    amount: int,
    name: str = "amount",
    *,
    allow_negative: bool = False,
) -> int:
    """
    Validate that ``amount`` is an integer count of minor units.

    Raises:
        TypeError: if ``amount`` is not an ``int`` (or is a ``bool``).
        ValueError: if negative and ``allow_negative`` is False.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{name} must be an integer number of minor units, got {amount!r}")
    if amount < 0 and not allow_negative:
        raise ValueError(f"{name} must not be negative, got {amount}")
    return amount


def validate_basis_points(
    rate_bp: int,
    name: str = "rate_bp",
    *,
    maximum: int | None = None,
) -> int:
    """
    Validate an integer basis-point rate in ``[0, maximum]``.

    Raises:
        TypeError: if ``rate_bp`` is not an ``int`` (or is a ``bool``).
        ValueError: if negative or above ``maximum``.
    """
    if isinstance(rate_bp, bool) or not isinstance(rate_bp, int):
        raise TypeError(f"{name} must be integer basis points, got {rate_bp!r}")
    if rate_bp < 0:
        raise ValueError(f"{name} must not be negative, got {rate_bp}")
    if maximum is not None and rate_bp > maximum:
        raise ValueError(f"{name} must not exceed {maximum}, got {rate_bp}")
    return rate_bp


def format_minor_units(amount: int, symbol: str = "") -> str:
    """
    Render minor units for humans, e.g. ``504000 -> "5,040.00"``.

    Display only; never parse the result back into an amount.
    """
    validate_minor_units(amount, allow_negative=True)
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), MINOR_UNITS_PER_MAJOR)
    return f"{sign}{symbol}{major:,}.{minor:02d}"
