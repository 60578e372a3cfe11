"""
tests/test_api_routes.py -- Integration tests for the HTTP bridge.

These tests exercise the full stack: FastAPI routing -> API key dependency
-> DuneAuthBackend -> read-only CredentialStore -> response model
serialization.

Coverage:
  - Auth failures: 401 without / with a wrong X-API-Key on every protected route
  - POST /auth/check: valid, wrong, expired, inactive, unknown; no-store header
  - GET /users, /users/{name}, /user-count, /capabilities
  - GET /health without auth, reporting store status
  - 422 envelope never echoes the submitted password
  - 429 once the configured check limit is exhausted

Fixtures used (from conftest.py):
  - api_client: TestClient over the seeded AUTHD database
"""

from __future__ import annotations

import pytest
from authd_data import ACTIVE_USERS, API_KEY, PASSWORDS
from fastapi.testclient import TestClient

from api.limiter import limiter

HEADERS = {"X-API-Key": API_KEY}


class TestApiAuthFailure:
    """Requests without the bridge key must return 401 on every protected route."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/users"),
            ("get", "/api/v1/users/Paul"),
            ("get", "/api/v1/user-count"),
            ("get", "/api/v1/capabilities"),
        ],
    )
    def test_missing_key(self, api_client: TestClient, method: str, path: str) -> None:
        resp = getattr(api_client, method)(path)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_check_without_key(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/check", json={"username": "Paul", "password": PASSWORDS["Paul"]})
        assert resp.status_code == 401

    def test_wrong_key(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", headers={"X-API-Key": API_KEY + "-nope"})
        assert resp.status_code == 401

    def test_empty_configured_key_locks_bridge(self, api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        from core.config import get_settings

        monkeypatch.setenv("DUNEAUTH_API_KEY", "")
        get_settings.cache_clear()
        resp = api_client.get("/api/v1/users", headers={"X-API-Key": ""})
        assert resp.status_code == 401
        resp = api_client.get("/api/v1/users", headers=HEADERS)
        assert resp.status_code == 401

    def test_short_configured_key_locks_bridge(self, api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        from core.config import get_settings

        monkeypatch.setenv("DUNEAUTH_API_KEY", "too-short")
        get_settings.cache_clear()
        resp = api_client.get("/api/v1/users", headers={"X-API-Key": "too-short"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"


class TestPasswordCheck:
    def _check(self, client: TestClient, username: str, password: str):
        return client.post(
            "/api/v1/auth/check",
            json={"username": username, "password": password},
            headers=HEADERS,
        )

    def test_valid(self, api_client: TestClient) -> None:
        resp = self._check(api_client, "Paul", PASSWORDS["Paul"])
        assert resp.status_code == 200
        assert resp.json() == {"valid": True}
        assert resp.headers["Cache-Control"] == "no-store"

    def test_foreign_tag_valid(self, api_client: TestClient) -> None:
        assert self._check(api_client, "Jessica", PASSWORDS["Jessica"]).json() == {"valid": True}

    @pytest.mark.parametrize(
        "username,password",
        [
            ("Paul", "not-the-password"),
            ("Gurney", PASSWORDS["Gurney"]),  # expired
            ("Rabban", PASSWORDS["Rabban"]),  # unsupported method
            ("Feyd", PASSWORDS["Feyd"]),  # inactive
            ("Shaddam", "corrino"),  # unknown
            ("paul", PASSWORDS["Paul"]),  # case mismatch
        ],
    )
    def test_rejections_look_identical(self, api_client: TestClient, username: str, password: str) -> None:
        resp = self._check(api_client, username, password)
        assert resp.status_code == 200
        assert resp.json() == {"valid": False}
        assert resp.headers["Cache-Control"] == "no-store"

    def test_validation_error_does_not_echo_password(self, api_client: TestClient) -> None:
        resp = api_client.post(
            "/api/v1/auth/check",
            json={"username": "", "password": "leaky-secret"},
            headers=HEADERS,
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"]["code"] == "validation_error"
        assert "leaky-secret" not in resp.text

    def test_rate_limited(self, api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        from core.config import get_settings

        limiter.reset()
        monkeypatch.setenv("DUNEAUTH_CHECK_RATE_LIMIT", "2/minute")
        get_settings.cache_clear()
        responses = [self._check(api_client, "Paul", "x") for _ in range(3)]
        assert [r.status_code for r in responses] == [200, 200, 429]
        assert responses[2].json()["error"]["code"] == "rate_limited"
        assert responses[2].headers["Retry-After"] == "60"
        limiter.reset()


class TestUserRoutes:
    def test_get_user(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users/Leto", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {
            "name": "Leto",
            "mail": "leto@arrakis.example",
            "groups": ["user", "admin", "immortal"],
        }

    def test_get_user_require_groups_false_still_has_groups(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users/Paul", params={"require_groups": "false"}, headers=HEADERS)
        assert resp.json()["groups"] == ["user", "admin"]

    @pytest.mark.parametrize("name", ["Feyd", "Shaddam", "leto"])
    def test_get_user_not_found(self, api_client: TestClient, name: str) -> None:
        resp = api_client.get(f"/api/v1/users/{name}", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_list_users_default_page(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", headers=HEADERS)
        assert resp.status_code == 200
        data = resp.json()
        assert list(data["users"]) == ACTIVE_USERS
        assert data["start"] == 0

    def test_list_users_limit_zero(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", params={"start": 0, "limit": 0}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["users"] == {}

    def test_list_users_page(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", params={"start": 1, "limit": 2}, headers=HEADERS)
        assert list(resp.json()["users"]) == ACTIVE_USERS[1:3]

    def test_list_users_accepts_filters(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", params={"limit": 100, "grps": "admin"}, headers=HEADERS)
        assert resp.status_code == 200
        assert list(resp.json()["users"]) == ACTIVE_USERS

    def test_list_users_rejects_negative_start(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/users", params={"start": -1}, headers=HEADERS)
        assert resp.status_code == 422

    def test_user_count(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/user-count", params={"name": "Paul"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {"count": len(ACTIVE_USERS)}

    def test_capabilities(self, api_client: TestClient) -> None:
        data = api_client.get("/api/v1/capabilities", headers=HEADERS).json()
        assert data["case_sensitive"] is True
        flags = data["flags"]
        assert {k for k, v in flags.items() if v} == {"getUsers", "getUserCount", "logout"}
        assert flags["modPass"] is False
        assert flags["external"] is False


class TestHealth:
    def test_health_no_auth_required(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["components"] == {"app": "ok", "store": "ok"}
        assert "version" in data

    def test_untrusted_host_rejected(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/health", headers={"Host": "evil.example"})
        assert resp.status_code == 400
