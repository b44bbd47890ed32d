"""
Configuration management for the fleet telemetry service.

This module provides centralized configuration loading and validation using
Pydantic settings. Values come from environment variables or .env files,
layered per deployment environment.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class OverflowPolicy(str, Enum):
    """What a full per-observer outbound queue does with the next frame."""
    DROP_OLDEST = "drop_oldest"
    DISCONNECT = "disconnect"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.

    Args:
        environment: The target environment.

    Returns:
        Tuple of .env file paths to load.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    ``jwt_secret`` is the only required value; everything else has a default
    suited to local development. The service refuses to start when a value
    is missing or malformed.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Credential verification
    jwt_secret: str = Field(
        ...,
        description="Shared secret used to verify observer and operator tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="Signature algorithm accepted for tokens"
    )

    # Simulation
    tick_interval_ms: int = Field(
        default=500,
        ge=50,
        le=60000,
        description="Interval between simulation ticks in milliseconds"
    )
    battery_drain_patrol: float = Field(default=0.15, ge=0, le=100)
    battery_drain_delivery: float = Field(default=0.2, ge=0, le=100)
    battery_drain_maintenance: float = Field(default=0.05, ge=0, le=100)
    battery_drain_idle: float = Field(default=0.03, ge=0, le=100)
    simulation_enabled_at_start: bool = Field(
        default=True,
        description="Initial value of the global simulation flag"
    )
    cycle_stall_threshold_seconds: float = Field(
        default=10.0,
        gt=0,
        description="A cycle running longer than this is reported as stalled"
    )

    # Broadcast
    outbound_queue_size: int = Field(
        default=64,
        ge=1,
        le=10000,
        description="Per-observer outbound frame queue capacity"
    )
    overflow_policy: OverflowPolicy = Field(
        default=OverflowPolicy.DROP_OLDEST,
        description="Behaviour when an observer's queue is full"
    )

    # Entity store
    entity_store_type: str = Field(
        default="memory",
        description="Entity store backend: 'memory' or 'redis'"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for the entity store"
    )
    seed_demo_fleet: bool = Field(
        default=True,
        description="Insert the demo fleet at startup when the store is empty"
    )

    # Rate limiting
    rate_limit_requests_per_minute: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum API requests per minute per IP"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="fleet-telemetry",
        description="Service name for OpenTelemetry traces"
    )

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def battery_drain_rates(self) -> Dict[str, float]:
        """Per-mode drain rates keyed by operating mode value."""
        return {
            "patrol": self.battery_drain_patrol,
            "delivery": self.battery_drain_delivery,
            "maintenance": self.battery_drain_maintenance,
            "idle": self.battery_drain_idle,
        }

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate that jwt_secret is not empty."""
        if not v or not v.strip():
            raise ValueError("jwt_secret cannot be empty")
        return v.strip()

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only symmetric HMAC algorithms are usable with a shared secret."""
        v = v.strip().upper()
        if v not in {"HS256", "HS384", "HS512"}:
            raise ValueError("jwt_algorithm must be one of: HS256, HS384, HS512")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("entity_store_type")
    @classmethod
    def validate_entity_store_type(cls, v: str) -> str:
        """Validate that entity_store_type is either 'memory' or 'redis'."""
        v = v.strip().lower()
        if v not in {"memory", "redis"}:
            raise ValueError("entity_store_type must be 'memory' or 'redis'")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Reject wildcard origins and anything that is not an http(s) URL."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}"
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins

    @model_validator(mode="after")
    def validate_entity_store_config(self) -> "Settings":
        """Require a Redis URL outside development when the Redis store is selected."""
        if self.entity_store_type == "redis" and not self.redis_url:
            if self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    "redis_url is required when entity_store_type is 'redis' "
                    "in non-development environments"
                )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected from
                    the ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()] or list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                if error.get("type", "") == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The validated application settings.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads from the environment."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings combinations that single-field validators cannot see.

    Raises:
        ConfigurationError: If any setting is unusable for this deployment.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.environment == Environment.PRODUCTION:
        if settings.entity_store_type == "memory":
            validation_errors["entity_store_type"] = (
                "The in-memory entity store loses all state on restart; "
                "configure 'redis' for production."
            )
        if len(settings.jwt_secret) < 32:
            validation_errors["jwt_secret"] = (
                "Production requires a jwt_secret of at least 32 characters."
            )

    stall_floor = settings.tick_interval_seconds
    if settings.cycle_stall_threshold_seconds <= stall_floor:
        validation_errors["cycle_stall_threshold_seconds"] = (
            f"Must exceed the tick interval ({stall_floor}s)."
        )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
