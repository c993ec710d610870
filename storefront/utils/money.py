"""Money helpers shared by the pricing engine and the API serializers."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value, default=ZERO) -> Decimal:
    """Coerce int/float/str/Decimal/None to Decimal (floats go through str)."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid numeric value: {value!r}')


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value) -> str:
    """500 -> '500', 500.5 -> '500.50'."""
    amount = to_decimal(value)
    return f"{int(amount)}" if amount % 1 == 0 else f"{amount:.2f}"


def as_float(value):
    """JSON-friendly rendering of a stored amount."""
    if value is None:
        return None
    return float(to_decimal(value))
