"""Integer-cent money helpers.

Every balance and wager inside the game is an ``int`` number of cents. Input
from players is parsed through ``Decimal`` and rounded to the nearest cent
(half-up); decimals are produced again only for display.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr keeps 0.1 as "0.1" instead of the binary expansion
        return Decimal(repr(value))
    return Decimal(str(value).strip())


def round_cents(value: Decimal) -> int:
    """Round a decimal amount of cents to a whole cent."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_amount(amount) -> Decimal:
    """Parse a currency amount; infinities pass through, NaN does not.

    Raises ``ValueError`` for anything that is not a number.
    """
    if isinstance(amount, bool):
        raise ValueError(f"not a monetary amount: {amount!r}")
    try:
        dec = to_decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"not a monetary amount: {amount!r}") from exc
    if dec.is_nan():
        raise ValueError(f"not a monetary amount: {amount!r}")
    return dec


def to_cents(amount) -> int:
    """Convert a currency amount (``"12.345"``, ``12.5``, ``Decimal``) to cents.

    Raises ``ValueError`` for values that are not finite numbers or are too
    large to hold as whole cents.
    """
    dec = parse_amount(amount)
    if not dec.is_finite():
        raise ValueError(f"not a monetary amount: {amount!r}")
    try:
        return round_cents(dec * HUNDRED)
    except InvalidOperation as exc:
        raise ValueError(f"amount out of range: {amount!r}") from exc


def clamp_cents(amount, low: int, high: int) -> int:
    """Clamp a decimal amount (in currency units) to ``[low, high]`` cents.

    Bounds are checked before rounding, so huge or infinite amounts never
    reach ``quantize``.
    """
    cents = amount * HUNDRED
    if cents <= low:
        return low
    if cents >= high:
        return high
    return round_cents(cents)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / HUNDRED).quantize(CENT)


def format_cents(cents: int) -> str:
    """``-1234`` -> ``"-12.34"``."""
    return str(from_cents(cents))
