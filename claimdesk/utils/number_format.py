"""Number parsing utilities for monetary and percentage input."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal('0.01')


def to_money(value) -> Decimal:
    """Quantize a Decimal-compatible value to cents (ROUND_HALF_UP)."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value, field: str = 'amount', allow_negative: bool = True) -> Decimal:
    """
    Parse a monetary value (int, float, Decimal or string like "1500.50") to Decimal.

    Rules:
    - Decimal separator: dot (.)
    - Spaces and commas are accepted as thousands separators ("12 000.00", "12,000.00")
    - Result is quantized to 2 decimal places

    Raises:
        ValueError: if the value is missing or not a number.
    """
    if value is None or value == '':
        raise ValueError(f'{field} is required')

    if isinstance(value, bool):
        raise ValueError(f'{field} must be a number')

    if isinstance(value, str):
        value = value.strip().replace(' ', '').replace(',', '')

    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a number')

    if not decimal_value.is_finite():
        raise ValueError(f'{field} must be a number')

    if decimal_value < 0 and not allow_negative:
        raise ValueError(f'{field} cannot be negative')

    return to_money(decimal_value)


def parse_optional_amount(value, field: str = 'amount', allow_negative: bool = True):
    """Like parse_amount but returns None for missing values."""
    if value is None or value == '':
        return None
    return parse_amount(value, field, allow_negative)
