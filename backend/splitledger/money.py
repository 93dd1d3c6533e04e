"""Money helpers. Amounts are Decimals in minor units (cents)."""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
PERCENT_PLACES = Decimal("0.0001")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

# Tolerance for every sum comparison. A difference equal to EPSILON still passes.
EPSILON = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a Decimal rounded to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_percent(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    return int(to_money(value) / CENT)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) * CENT).quantize(CENT)


def within_epsilon(a, b) -> bool:
    return abs(Decimal(str(a)) - Decimal(str(b))) <= EPSILON


def is_dust(value) -> bool:
    """True when a balance is too small to settle."""
    return abs(value) < EPSILON
