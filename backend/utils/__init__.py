"""
Utility modules for the backend.
"""
from .clock import utc_now, to_naive_utc, age_in_days
from .normalize import (
    ValidationError,
    to_int,
    to_bool,
    to_datetime,
    to_str,
    require_str,
    to_choice,
)

__all__ = [
    'utc_now',
    'to_naive_utc',
    'age_in_days',
    'ValidationError',
    'to_int',
    'to_bool',
    'to_datetime',
    'to_str',
    'require_str',
    'to_choice',
]
