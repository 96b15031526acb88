"""
Input Normalization Utilities
=============================

Single source of truth for input normalization.
All parsing of external inputs (query strings, JSON bodies, CLI options)
happens here, nowhere else.

Usage:
    from utils.normalize import to_int, to_str, ValidationError

    @competitive_bp.route("/market-trends")
    def market_trends():
        city = require_str(request.args.get("city"), field="city")
        months = to_int(request.args.get("months"), default=6, field="months")
        ...

ValidationError is rendered as a 400 by the error envelope middleware, so
routes let it propagate.
"""

from datetime import date, datetime
from typing import Iterable, Optional, Union

from utils.clock import to_naive_utc


class ValidationError(ValueError):
    """Raised when input cannot be normalized to expected type."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


def to_int(
    value: Optional[Union[str, int]],
    *,
    default: Optional[int] = None,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
    field: str = None
) -> Optional[int]:
    """
    Convert string to int, with explicit None handling and optional bounds.

    Args:
        value: Input string (typically from request.args.get())
        default: Value to return if input is None or empty
        minimum: Inclusive lower bound
        maximum: Inclusive upper bound
        field: Field name for error messages

    Raises:
        ValidationError: If value cannot be converted or is out of bounds
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Expected int, got bool: {value!r}", field=field, received_value=value)
    try:
        result = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"Expected int, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field or 'value'} must be >= {minimum}, got {result}",
                              field=field, received_value=value)
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field or 'value'} must be <= {maximum}, got {result}",
                              field=field, received_value=value)
    return result


def to_bool(
    value: Optional[str],
    *,
    default: bool = False,
    field: str = None
) -> bool:
    """
    Convert string to bool.

    Accepts (case-insensitive):
        True: 'true', '1', 'yes', 'on'
        False: 'false', '0', 'no', 'off'

    Raises:
        ValidationError: If value is not a recognized boolean string
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    lower = str(value).lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    raise ValidationError(
        f"Expected bool, got: {value!r}",
        field=field,
        received_value=value
    )


def to_datetime(
    value: Optional[Union[str, date]],
    *,
    default: Optional[datetime] = None,
    field: str = None
) -> Optional[datetime]:
    """
    Convert ISO string to a naive UTC datetime.

    Accepts formats:
        - ISO 8601 (e.g., 2024-01-15T10:30:00Z, 2024-01-15)
        - Already a datetime/date object (passthrough, normalized to UTC)

    Raises:
        ValidationError: If value cannot be parsed as datetime
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(
            f"Expected ISO datetime, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_str(
    value: Optional[str],
    *,
    default: Optional[str] = None,
    strip: bool = True,
    field: str = None
) -> Optional[str]:
    """
    Normalize string input, optionally stripping whitespace.

    Whitespace-only input is treated as empty.
    """
    if value is None or value == "":
        return default
    result = str(value)
    if strip:
        result = result.strip()
    if result == "":
        return default
    return result


def require_str(value: Optional[str], *, field: str) -> str:
    """to_str() that rejects missing or blank input."""
    result = to_str(value, field=field)
    if result is None:
        raise ValidationError(f'"{field}" is required', field=field, received_value=value)
    return result


def to_choice(
    value: Optional[str],
    choices: Iterable[str],
    *,
    default: Optional[str] = None,
    field: str = None
) -> Optional[str]:
    """
    Accept a value only if it is one of `choices` (exact match).

    Raises:
        ValidationError: If value is not an allowed choice
    """
    value = to_str(value, default=None, field=field)
    if value is None:
        return default
    choices = list(choices)
    if value not in choices:
        raise ValidationError(
            f"Expected one of {choices}, got: {value!r}",
            field=field,
            received_value=value
        )
    return value
