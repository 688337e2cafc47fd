"""
Money Helpers

All amounts inside the engine are integers in the currency's minor unit
(paise, cents). These helpers convert at the boundary and render amounts
for humans. Nothing here ever goes through a binary float.
"""

from decimal import Decimal, InvalidOperation
from typing import Annotated, Optional, Union

from pydantic import Field

from settleup.config import get_settings


# Strict: floats, bools and numeric strings are rejected at model construction.
MinorUnits = Annotated[int, Field(strict=True)]


class MoneyConversionError(ValueError):
    """A display amount could not be expressed in whole minor units."""
    pass


def to_minor_units(
    amount: Union[Decimal, str, int],
    exponent: Optional[int] = None,
) -> int:
    """
    Convert a major-unit amount ("123.45") to integer minor units (12345).

    Floats are refused outright. Values needing a fraction of a minor
    unit are refused rather than rounded.
    """
    if isinstance(amount, bool) or isinstance(amount, float):
        raise MoneyConversionError(
            f"Refusing to convert {amount!r}: use Decimal or str for money"
        )
    if exponent is None:
        exponent = get_settings().engine.minor_unit_exponent

    try:
        value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    except InvalidOperation:
        raise MoneyConversionError(f"Not a valid amount: {amount!r}")
    if not value.is_finite():
        raise MoneyConversionError(f"Not a finite amount: {amount!r}")

    scaled = value.scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise MoneyConversionError(
            f"{amount} has more than {exponent} decimal places"
        )
    return int(scaled)


def from_minor_units(amount: int, exponent: Optional[int] = None) -> Decimal:
    """Convert integer minor units back to an exact major-unit Decimal."""
    if exponent is None:
        exponent = get_settings().engine.minor_unit_exponent
    return Decimal(amount).scaleb(-exponent)


def format_money(
    amount: int,
    symbol: Optional[str] = None,
    exponent: Optional[int] = None,
) -> str:
    """
    Render minor units for display, e.g. 123450 -> "₹1,234.50".

    Negative amounts get a leading minus before the symbol.
    """
    engine = get_settings().engine
    if symbol is None:
        symbol = engine.currency_symbol
    if exponent is None:
        exponent = engine.minor_unit_exponent

    major = from_minor_units(abs(amount), exponent)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{major:,.{exponent}f}"
