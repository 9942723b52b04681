"""Parsing helpers for caller-supplied parameters (query strings and JSON bodies)."""
import re
from datetime import date, datetime, timezone
from typing import Optional, Tuple

from franchise_pos.exceptions import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Counter columns (stock, missing, qty) are 32-bit integers
MAX_COUNTER = 2 ** 31 - 1
# Ids are BIGINT
MAX_ID = 2 ** 63 - 1

ASCII_DIGITS = re.compile(r'[0-9]+')


def is_strict_int(value) -> bool:
    """True for real ints; bools are rejected even though they subclass int."""
    return isinstance(value, int) and not isinstance(value, bool)


def parse_positive_int(value, field: str) -> int:
    """Validate an integer in 1..MAX_COUNTER."""
    if not is_strict_int(value) or value <= 0:
        raise ValidationError(f'{field} inválido (entero > 0)', payload={'field': field})
    if value > MAX_COUNTER:
        raise ValidationError(f'{field} no puede superar {MAX_COUNTER}', payload={'field': field})
    return value


def parse_id(value, field: str) -> int:
    """
    Coerce a record id to int.

    Accepts ints and ASCII digit strings ("42"), the two forms clients send.
    """
    if isinstance(value, str) and ASCII_DIGITS.fullmatch(value.strip()):
        value = int(value.strip())
    if is_strict_int(value) and 0 < value <= MAX_ID:
        return value
    raise ValidationError(f'{field} requerido', payload={'field': field})


def parse_bool(value, default: Optional[bool] = None) -> Optional[bool]:
    """Parse 'true'/'false' style flags; empty means default."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_datetime(value, field: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp ("2026-01-21T00:00:00.000Z").

    Aware values are converted to naive UTC, matching stored timestamps.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f'{field} inválido (ISO-8601)', payload={'field': field})
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_pagination(page=None, page_size=None, max_page_size: int = MAX_PAGE_SIZE) -> Tuple[int, int, int]:
    """
    Normalize page/page_size, clamping instead of failing.

    Returns:
        (page, page_size, offset)
    """
    try:
        page = int(page) if page not in (None, '') else 1
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size) if page_size not in (None, '') else DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE

    page = min(MAX_COUNTER, max(1, page))
    page_size = min(max_page_size, max(1, page_size))
    return page, page_size, (page - 1) * page_size


def parse_day(value, field: str = 'day') -> Optional[date]:
    """Parse a calendar day ("2026-01-21"); empty means None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f'{field} inválido (usa YYYY-MM-DD)', payload={'field': field})
