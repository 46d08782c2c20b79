from __future__ import annotations
from datetime import datetime, timezone
from backoffice.time_utils import parse_iso_datetime, utcnow

from typing import Any

from .errors import InvalidRequest


# Largest single amount accepted: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request payloads.

    Accepts ints (not bools) and plain digit strings. Rejects floats,
    decimals and scientific notation rather than rounding them.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidRequest(f"{field} must be an integer", {"field": field})
        # "1e3" and "12.5" are rejected, not coerced
        if 'e' in stripped.lower() or '.' in stripped:
            raise InvalidRequest(f"{field} must be a plain integer", {"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise InvalidRequest(f"{field} must be an integer", {"field": field})
    if isinstance(value, float):
        raise InvalidRequest(f"{field} must be an integer, not a decimal", {"field": field})
    raise InvalidRequest(f"{field} must be an integer", {"field": field})


def require_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise InvalidRequest(f"{field} must be positive", {"field": field, "value": number})
    return number


def require_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    """Money amount in cents: integer, non-negative (or positive), bounded."""
    cents = coerce_int(value, field)
    if cents < 0 or (cents == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise InvalidRequest(f"{field} must be {qualifier}", {"field": field, "value": cents})
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidRequest(f"{field} exceeds the maximum amount", {"field": field, "value": cents})
    return cents


def optional_timestamp(value: Any, field: str) -> datetime:
    """
    Normalize an optional timestamp to UTC-naive.

    None -> utcnow(); aware datetimes are converted; strings go through
    parse_iso_datetime.
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            raise InvalidRequest(f"{field} is not a valid ISO-8601 datetime", {"field": field})
        return parsed if parsed is not None else utcnow()
    raise InvalidRequest(f"{field} is not a valid datetime", {"field": field})
