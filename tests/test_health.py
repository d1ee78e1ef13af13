"""Tests for the health endpoint."""

import pytest
from fastapi.testclient import TestClient

from knowledge_pipeline.app import app


@pytest.fixture
def client():
    return TestClient(app)


def test_health_returns_200(client: TestClient):
    """GET /health returns 200 status code."""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_response_body(client: TestClient):
    """GET /health needs no collaborators and no secret."""
    response = client.get("/health")
    assert response.json() == {
        "status": "ok",
        "service": "knowledge-pipeline",
        "version": "0.1.0",
    }
