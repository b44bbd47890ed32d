"""
Integration test configuration and fixtures.

Builds the full application against the in-memory entity store with the
demo fleet seeded and global simulation switched off, so robot records
only change when a test asks them to.
"""

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from main import create_app


@pytest.fixture
def settings(jwt_secret):
    return Settings(
        jwt_secret=jwt_secret,
        entity_store_type="memory",
        seed_demo_fleet=True,
        simulation_enabled_at_start=False,
        tick_interval_ms=50,
        _env_file=None,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Client with the lifespan running: store seeded, clock ticking."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(token_factory):
    return {"Authorization": f"Bearer {token_factory()}"}
