"""
Money Helpers Module

Single-currency Decimal helpers with fixed two-place precision.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Optional
import re

from .errors import ValidationError

# High precision for intermediate financial calculations
getcontext().prec = 28

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')

CURRENCY_PREFIX = re.compile(r'^(?:₹|Rs\.?|INR)\s*', re.IGNORECASE)
PLAIN_AMOUNT = re.compile(r'[+-]?(?:\d+(?:\.\d*)?|\.\d+)')


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places using ROUND_HALF_UP"""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a value to Decimal without passing through binary float

    Args:
        value: Decimal, int, str or float

    Returns:
        Decimal value

    Raises:
        ValidationError: If the value cannot be converted
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Cannot convert {value!r} to Decimal")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        return decimal_from_string(value)
    raise ValidationError(f"Cannot convert {value!r} to Decimal")


def optional_decimal(value: Any) -> Optional[Decimal]:
    """Convert to Decimal, passing None through"""
    if value is None:
        return None
    return to_decimal(value)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Args:
        value: String representation of number, e.g. "1,20,000.50" or "₹ 500"

    Returns:
        Decimal value

    Raises:
        ValidationError: If the string is not a plain decimal amount
    """
    if not value or not isinstance(value, str):
        raise ValidationError("Value must be a non-empty string")

    # Only a leading currency marker and comma grouping are tolerated
    clean_value = CURRENCY_PREFIX.sub('', value.strip()).replace(',', '')
    if not PLAIN_AMOUNT.fullmatch(clean_value):
        raise ValidationError(f"Cannot convert '{value}' to Decimal")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValidationError(f"Cannot convert '{value}' to Decimal")
