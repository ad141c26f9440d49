"""
============================================================================
RaceFi Backend v1.0.0
Request Logger - HTTP Access Logging
============================================================================

Reliability Level: STANDARD
Input Constraints: None
Side Effects: Log lines and http_* Prometheus metrics per request

Logs method, path, status, duration and the authenticated user (set on
request.state by the auth dependency) for every request.

============================================================================
"""

import logging
import time

from fastapi import Request

from app.observability.metrics import record_http_request

logger = logging.getLogger("racefi.requests")


async def log_requests(request: Request, call_next):
    """HTTP middleware: time the request, then log and record it."""
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.perf_counter() - start
        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        user_id = getattr(request.state, "user_id", None) or "anonymous"

        logger.info(
            f"[HTTP] {request.method} {request.url.path} | "
            f"status={status_code} | "
            f"duration_ms={duration * 1000:.1f} | "
            f"user={user_id} | "
            f"client={request.client.host if request.client else 'unknown'}"
        )
        record_http_request(request.method, route_path, status_code, duration)
