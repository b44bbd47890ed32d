"""
Middleware components for the fleet telemetry service.

This module contains ASGI middleware for cross-cutting concerns
such as request correlation and rate limiting.
"""

from middleware.request_id import RequestIDMiddleware, get_request_id, request_id_var
from middleware.rate_limiter import (
    create_rate_limiter,
    get_client_ip,
    setup_rate_limiting,
)

__all__ = [
    "RequestIDMiddleware",
    "get_request_id",
    "request_id_var",
    "create_rate_limiter",
    "get_client_ip",
    "setup_rate_limiting",
]
