"""
Shared pytest fixtures and configuration for all tests.
"""
import os
import random
import time
from typing import Callable, Optional

import jwt
import pytest

TEST_JWT_SECRET = "test-secret-for-fleet-telemetry-0123456789"

# Settings are read when main is imported; a secret must exist before that.
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


from fleet.memory_store import InMemoryEntityStore  # noqa: E402
from fleet.models import (  # noqa: E402
    Entity,
    EntityConfig,
    EntityStatus,
    Location,
    OperatingMode,
)


@pytest.fixture
def jwt_secret() -> str:
    return TEST_JWT_SECRET


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Build signed operator tokens; pass ``exp_in`` negative for an expired one."""

    def _make(
        sub: Optional[str] = "operator-1",
        username: str = "operator",
        role: str = "admin",
        secret: str = TEST_JWT_SECRET,
        exp_in: int = 3600,
    ) -> str:
        now = int(time.time())
        payload = {"username": username, "role": role, "iat": now, "exp": now + exp_in}
        if sub is not None:
            payload["sub"] = sub
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def make_entity() -> Callable[..., Entity]:
    """Factory for robots with sensible defaults."""

    def _make(
        entity_id: str = "robot-001",
        mode: OperatingMode = OperatingMode.PATROL,
        status: EntityStatus = EntityStatus.ACTIVE,
        x: float = 5.0,
        y: float = 5.0,
        battery: float = 80.0,
        speed_limit: float = 2.0,
        battery_threshold: float = 20.0,
        zone: str = "warehouse-a",
        version: int = 1,
    ) -> Entity:
        return Entity(
            id=entity_id,
            name=entity_id.title(),
            status=status,
            location=Location(x=x, y=y, z=0.0),
            battery=battery,
            assigned_zone=zone,
            config=EntityConfig(
                operating_mode=mode,
                speed_limit=speed_limit,
                battery_threshold=battery_threshold,
            ),
            version=version,
        )

    return _make


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore(rng=random.Random(7))
