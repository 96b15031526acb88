"""
Global middleware for API requests.

Provides:
- Request context (X-Request-ID, X-Organization-ID, access log)
- Error envelope standardization
"""

from .request_context import (
    current_organization_id,
    current_user_id,
    setup_request_context_middleware,
)
from .error_envelope import make_error_response, setup_error_handlers

__all__ = [
    'setup_request_context_middleware',
    'setup_error_handlers',
    'make_error_response',
    'current_organization_id',
    'current_user_id',
]
