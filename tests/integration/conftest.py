"""
Integration test fixtures
"""

import pytest
from fastapi.testclient import TestClient

from recsys.api.config import APISettings
from recsys.api.main import create_app
from recsys.api.middleware.timing import get_latency_tracker


@pytest.fixture
def api_settings(tmp_path):
    """Settings pointing at the same SQLite file as the `store` fixture."""
    return APISettings(database_url=f"sqlite:///{tmp_path / 'metadata.db'}")


@pytest.fixture
def app(api_settings, ml_config):
    get_latency_tracker().reset()
    return create_app(settings=api_settings, ml_config=ml_config)


@pytest.fixture
def api_client(anchor_store, app):
    """Client for a fully hydrated app over the three-item anchor catalog."""
    with TestClient(app) as client:
        yield client
