# Configuration module for the fleet telemetry service
from .settings import (
    ConfigurationError,
    Environment,
    OverflowPolicy,
    Settings,
    get_settings,
    validate_startup,
)

__all__ = [
    "ConfigurationError",
    "Environment",
    "OverflowPolicy",
    "Settings",
    "get_settings",
    "validate_startup",
]
