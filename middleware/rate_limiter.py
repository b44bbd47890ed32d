"""
Rate limiting for the HTTP control and entity surface.

Implemented with slowapi: one per-IP default limit applied to every HTTP
route through ``SlowAPIMiddleware``. WebSocket sessions are not counted.
"""

import json
import logging

from fastapi import FastAPI, Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.

    Forwarding headers set by a load balancer or reverse proxy take
    precedence over the socket peer address.

    Args:
        request: The incoming FastAPI request

    Returns:
        The client's IP address as a string
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_rate_limiter(requests_per_minute: int = 100) -> Limiter:
    """Create a limiter applying ``requests_per_minute`` per client IP to every route."""
    return Limiter(key_func=get_client_ip, default_limits=[f"{requests_per_minute}/minute"])


def setup_rate_limiting(
    app: FastAPI,
    requests_per_minute: int = 100,
    enabled: bool = True
) -> None:
    """
    Configure rate limiting for a FastAPI application.

    Args:
        app: The FastAPI application instance
        requests_per_minute: Maximum requests per minute per client IP
        enabled: Whether rate limiting is enabled (default: True)
    """
    if not enabled:
        logger.info("Rate limiting is disabled")
        return

    app.state.limiter = create_rate_limiter(requests_per_minute)
    app.add_exception_handler(RateLimitExceeded, _custom_rate_limit_handler)
    app.add_middleware(SlowAPIMiddleware)

    logger.info(f"Rate limiting configured: {requests_per_minute}/min")


# SlowAPIMiddleware only invokes synchronous handlers
def _custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Return a 429 in the application's structured error format.

    Args:
        request: The incoming request that exceeded the rate limit
        exc: The RateLimitExceeded exception

    Returns:
        JSON response with 429 status code and error details
    """
    request_id = getattr(request.state, "request_id", "unknown")
    retry_after = getattr(exc, "retry_after", 60)

    response_body = {
        "error_code": "RATE_LIMITED",
        "message": "Too many requests. Please slow down.",
        "details": {
            "limit": str(getattr(exc, "detail", "Rate limit exceeded")),
            "retry_after_seconds": retry_after
        },
        "request_id": request_id
    }

    logger.warning(
        f"Rate limit exceeded for IP {get_client_ip(request)}",
        extra={"extra_data": {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method
        }}
    )

    return Response(
        content=json.dumps(response_body),
        status_code=429,
        media_type="application/json",
        headers={
            "Retry-After": str(retry_after),
            "X-Request-ID": request_id
        }
    )
