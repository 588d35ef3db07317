"""
Formatting helpers for templates and CLI output.
South African conventions: space as thousands separator, dot as decimal separator.
"""
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Union


def money_za(value: Union[int, float, Decimal, str, None], symbol: str = 'R') -> str:
    """
    Format a monetary amount with exactly 2 decimals.

    Examples:
        money_za(252000) -> "R 252 000.00"
        money_za(-5000) -> "-R 5 000.00"
        money_za(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = ' '.join(groups)[::-1]

    prefix = f"{symbol} " if symbol else ""
    return f"{sign}{prefix}{integer_formatted}.{decimal_part}"


def percent(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a percentage with 2 decimals.

    Examples:
        percent(Decimal('5')) -> "5.00%"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    return f"{num}%"


def datetime_za(value: Union[datetime, None]) -> str:
    """Format a datetime as YYYY/MM/DD HH:MM."""
    if not isinstance(value, datetime):
        return "-"
    return value.strftime("%Y/%m/%d %H:%M")
