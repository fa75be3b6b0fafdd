"""Minor-unit money helpers.

The engine only ever sees integer minor units. Conversion from a user-entered
decimal happens here, at the boundary, with half-up rounding.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from escrow_engine.exceptions import ValidationError

# ISO 4217 minor unit exponents; anything not listed uses 2
CURRENCY_EXPONENTS = {
    "JPY": 0,
    "KRW": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
}
DEFAULT_EXPONENT = 2


def currency_exponent(currency_code: str) -> int:
    """Number of fraction digits in the currency's minor unit."""
    return CURRENCY_EXPONENTS.get(currency_code.upper(), DEFAULT_EXPONENT)


def to_minor_units(amount: Decimal | str | int | float, currency_code: str = "ZAR") -> int:
    """Convert a decimal amount to integer minor units, rounding half-up.

    Parameters
    ----------
    amount : Decimal | str | int | float
        User-entered amount in major units (e.g. ``"1000.00"``).
    currency_code : str
        ISO currency code used to pick the exponent.

    Returns
    -------
    int
        Amount in minor units.

    Raises
    ------
    ValidationError
        If the amount cannot be parsed or is not finite.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from exc

    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount")

    scale = Decimal(10) ** currency_exponent(currency_code)
    return int((value * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(minor_units: int, currency_code: str = "ZAR") -> Decimal:
    """Convert integer minor units back to a Decimal in major units."""
    exponent = currency_exponent(currency_code)
    return Decimal(minor_units).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))


def format_minor_units(minor_units: int, currency_code: str = "ZAR") -> str:
    """Format minor units for messages, e.g. ``ZAR 1,000.00``."""
    exponent = currency_exponent(currency_code)
    value = from_minor_units(minor_units, currency_code)
    return f"{currency_code.upper()} {value:,.{exponent}f}"
