"""
Request context middleware - correlation ID, tenant scope and access log.

Every request gets:
- g.request_id from X-Request-ID (generated when absent), echoed on the response
- g.organization_id from X-Organization-ID (authentication is upstream;
  this service trusts the gateway-supplied tenant header)
- one access-log line for /api paths with status and duration
"""

import logging
import time
import uuid

from flask import Flask, g, request

from utils.normalize import ValidationError

ORGANIZATION_HEADER = 'X-Organization-ID'

logger = logging.getLogger("api.request")


def setup_request_context_middleware(app: Flask) -> None:

    @app.before_request
    def _inject_context():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        g.organization_id = (request.headers.get(ORGANIZATION_HEADER) or '').strip() or None
        g.user_id = (request.headers.get('X-User-ID') or '').strip() or None
        g.request_start = time.perf_counter()

    @app.after_request
    def _finish(response):
        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        if request.path.startswith('/api') and hasattr(g, 'request_start'):
            duration_ms = round((time.perf_counter() - g.request_start) * 1000, 2)
            logger.info(
                "api_request path=%s method=%s status=%s duration_ms=%s org=%s request_id=%s",
                request.path,
                request.method,
                response.status_code,
                duration_ms,
                g.get('organization_id'),
                g.get('request_id'),
            )
        return response


def current_organization_id() -> str:
    """Tenant of the current request; missing header is a 400."""
    organization_id = g.get('organization_id')
    if not organization_id:
        raise ValidationError(f"{ORGANIZATION_HEADER} header is required", field=ORGANIZATION_HEADER)
    return organization_id


def current_user_id():
    return g.get('user_id')
