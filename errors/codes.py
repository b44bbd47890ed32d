"""
Error code catalog for the fleet telemetry service.

This module defines all error codes used throughout the application,
covering validation errors, authentication errors, persistence conflicts,
store failures, and internal errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    Each error code maps to a specific HTTP status code and error category:
    - Validation errors (4xx): Client request issues
    - Authentication errors (4xx): Credential failures
    - Persistence errors (4xx/5xx): Conflicts and store outages
    - Internal errors (5xx): Server-side issues
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload validation failed (HTTP 400)"""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    """A control operation received an empty or missing argument (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested entity does not exist (HTTP 404)"""

    CONFLICT = "CONFLICT"
    """Entity was modified concurrently; version check failed (HTTP 409)"""

    # Authentication errors (4xx)
    UNAUTHORIZED = "UNAUTHORIZED"
    """Missing or unverifiable credential (HTTP 401)"""

    RATE_LIMITED = "RATE_LIMITED"
    """Too many requests (HTTP 429)"""

    # Store errors (5xx)
    ENTITY_STORE_UNAVAILABLE = "ENTITY_STORE_UNAVAILABLE"
    """Entity store backend unreachable (HTTP 503)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.ENTITY_STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
