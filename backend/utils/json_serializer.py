"""
JSON Serialization Helper - Converts datetimes and other non-native types to JSON-compatible formats

Used by the Flask JSON provider (API responses) and by the CLI (stdout).
"""

import json
from datetime import datetime, date
from decimal import Decimal

from flask.json.provider import DefaultJSONProvider


def serialize_for_json(obj):
    """
    Recursively convert non-JSON-serializable objects to strings or native types.

    Handles:
    - datetime / date -> ISO format string
    - Decimal -> float
    - dict/list/tuple -> recursively process
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return float(obj)
    elif isinstance(obj, dict):
        return {key: serialize_for_json(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    else:
        return obj


def safe_json_dumps(obj, **kwargs):
    """Convert object to JSON string, handling datetime types"""
    return json.dumps(serialize_for_json(obj), default=str, **kwargs)


class IsoJSONProvider(DefaultJSONProvider):
    """Flask JSON provider emitting ISO 8601 instead of RFC 822 dates."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)
