"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status and version fields
  - No authentication required
"""

from __future__ import annotations

from api.main import __version__


def test_health_returns_status_and_version(api_client):
    """Health endpoint returns 200 with status and the app version."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": __version__}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers or cookies."""
    client, _, _ = api_client
    client.cookies.clear()
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_unknown_host_rejected(api_client):
    """TrustedHostMiddleware refuses requests for hosts outside the allow list."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={"Host": "evil.example.com"})
    assert resp.status_code == 400
