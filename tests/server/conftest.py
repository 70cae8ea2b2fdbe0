"""Pytest fixtures for FastAPI server tests.

The collaborator bundle is replaced with in-memory services wired to the
scripted HTTP transport from the top-level conftest.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from oauth2_sso.server.dependencies import get_services
from oauth2_sso.server.main import app
from oauth2_sso.services import SSOServices


@pytest.fixture(scope="function")
def client(services: SSOServices) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client using the test services.

    Yields:
        TestClient for making API requests

    Example:
        >>> def test_endpoint(client):
        >>>     response = client.get("/health")
        >>>     assert response.status_code == 200
    """
    app.dependency_overrides[get_services] = lambda: services

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
