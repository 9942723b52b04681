"""
Serialization helpers for API payloads and audit records.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional

CENTS = Decimal('0.01')


def to_money(value: Union[int, float, Decimal, str, None]) -> Decimal:
    """
    Convert a value to a Decimal rounded to cents.

    Floats go through str() so 0.1 stays 0.10 instead of 0.1000000000000000055.

    Raises:
        InvalidOperation: If value is not numeric
    """
    if value is None:
        raise InvalidOperation('None is not a money amount')
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS)


def money(value: Union[int, float, Decimal, str, None]) -> Optional[str]:
    """
    Format a money amount as a plain string with two decimals.

    Examples:
        money(400) -> "400.00"
        money(Decimal('12.5')) -> "12.50"
        money(None) -> None
    """
    if value is None:
        return None
    try:
        return str(to_money(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def iso(value: Union[date, datetime, None]) -> Optional[str]:
    """ISO-8601 string or None."""
    if value is None:
        return None
    return value.isoformat()


def card_last4(card_number: Optional[str]) -> Optional[str]:
    """Last four digits of a card number; never the full number."""
    if not card_number:
        return None
    return card_number[-4:]


def json_safe(value):
    """Recursively convert Decimals, datetimes and enums into JSON-friendly values."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(v) for v in value]
    if hasattr(value, 'value') and hasattr(type(value), '__members__'):
        return value.value
    return value
