"""Integration tests for api/routes/v1/auth.py through the FastAPI TestClient.

Covers:
- POST /register: 200 summary without password, 409 on duplicate, 422 on bad input
- POST /login: bearer token with Cache-Control: no-store; identical 401 for
  unknown identity and wrong password
- GET /validate: 200 with identity/role; one generic 401 body for missing,
  tampered, expired and revoked tokens
- POST /logout: always 200, revokes the presented token
- POST /password: re-checks the current password
- self-registration switched off: admin-only register
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from api.main import app
from auth.tokens import TokenIssuer
from core.config import get_settings

BASE = "/api/v1/auth"


def _unique(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.edu"


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _register(client, identity: str, password: str = "password123", **extra):
    return client.post(f"{BASE}/register", json={"identity": identity, "password": password, **extra})


def _login(client, identity: str, password: str = "password123") -> str:
    resp = client.post(f"{BASE}/login", json={"identity": identity, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


@pytest.fixture
def registration_disabled():
    """Switch self-registration off for one test and restore the previous settings."""
    previous = app.state.settings
    app.state.settings = get_settings().model_copy(update={"self_registration_enabled": False})
    try:
        yield
    finally:
        app.state.settings = previous


class TestRegister:
    def test_register_returns_summary(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        resp = _register(client, identity, display_name="Asha")
        assert resp.status_code == 200
        body = resp.json()
        assert body["identity"] == identity
        assert body["role"] == "student"
        assert body["display_name"] == "Asha"
        assert body["created_at"]
        assert "password" not in resp.text
        assert "password123" not in resp.text

    def test_duplicate_is_409(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        assert _register(client, identity, "first-pass").status_code == 200
        resp = _register(client, identity, "second-pass")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_identity"
        _login(client, identity, "first-pass")

    def test_public_caller_cannot_pick_role(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, _unique(), role="admin")
        assert resp.status_code == 200
        assert resp.json()["role"] == "student"

    def test_admin_caller_can_pick_role(self, api_client) -> None:
        client, _, admin_token = api_client
        resp = client.post(
            f"{BASE}/register",
            json={"identity": _unique("staff"), "password": "password123", "role": "mess_staff"},
            headers=_bearer(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "mess_staff"

    def test_admin_unknown_role_is_422(self, api_client) -> None:
        client, _, admin_token = api_client
        resp = client.post(
            f"{BASE}/register",
            json={"identity": _unique(), "password": "password123", "role": "superuser"},
            headers=_bearer(admin_token),
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_missing_field_does_not_echo_password(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(f"{BASE}/register", json={"password": "hunter2-secret"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "hunter2-secret" not in resp.text

    def test_password_over_byte_limit_is_policy_error(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, _unique(), "é" * 40)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "password_policy"


class TestRegistrationDisabled:
    def test_anonymous_register_is_401(self, api_client, registration_disabled) -> None:
        client, _, _ = api_client
        resp = _register(client, _unique())
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_non_admin_register_is_403(self, api_client, registration_disabled) -> None:
        client, service, _ = api_client
        identity = _unique()
        service.register(identity, "password123")
        token = service.login(identity, "password123").token
        resp = client.post(
            f"{BASE}/register",
            json={"identity": _unique(), "password": "password123"},
            headers=_bearer(token),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_register_allowed(self, api_client, registration_disabled) -> None:
        client, _, admin_token = api_client
        resp = client.post(
            f"{BASE}/register",
            json={"identity": _unique(), "password": "password123", "role": "admin"},
            headers=_bearer(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"


class TestLogin:
    def test_login_returns_bearer_token(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        resp = client.post(f"{BASE}/login", json={"identity": identity, "password": "password123"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["identity"] == identity
        assert body["role"] == "student"
        assert body["token"].count(".") == 2
        assert body["expires_at"]

    def test_password_longer_than_registered_byte_limit_rejected(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        assert _register(client, identity, "é" * 36).status_code == 200
        resp = client.post(f"{BASE}/login", json={"identity": identity, "password": "é" * 36 + "x"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_unknown_identity_and_wrong_password_look_the_same(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        unknown = client.post(f"{BASE}/login", json={"identity": _unique("ghost"), "password": "password123"})
        wrong = client.post(f"{BASE}/login", json={"identity": identity, "password": "not-the-password"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"
        assert unknown.headers["www-authenticate"] == "Bearer"


class TestValidate:
    def test_valid_token(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        resp = client.get(f"{BASE}/validate", headers=_bearer(_login(client, identity)))
        assert resp.status_code == 200
        body = resp.json()
        assert body["identity"] == identity
        assert body["role"] == "student"
        assert body["token_id"]

    def test_missing_header_is_401(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get(f"{BASE}/validate")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_every_token_failure_has_the_same_body(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)

        header, payload, signature = _login(client, identity).split(".")
        index = len(payload) // 2
        tampered = f"{header}.{payload[:index]}{'A' if payload[index] != 'A' else 'B'}{payload[index + 1:]}.{signature}"

        two_hours_ago = datetime.now(timezone.utc) - timedelta(hours=2)
        expired = (
            TokenIssuer(get_settings().secret_key, 3600, clock=lambda: two_hours_ago).issue(identity, "student").token
        )

        revoked = _login(client, identity)
        assert client.post(f"{BASE}/logout", headers=_bearer(revoked)).status_code == 200

        bodies = []
        for token in ["garbage", tampered, expired, revoked]:
            resp = client.get(f"{BASE}/validate", headers=_bearer(token))
            assert resp.status_code == 401, token
            bodies.append(resp.json())
        assert all(body == bodies[0] for body in bodies)
        assert bodies[0]["error"]["code"] == "unauthorized"


class TestLogout:
    def test_logout_revokes_token(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        token = _login(client, identity)
        assert client.post(f"{BASE}/logout", headers=_bearer(token)).status_code == 200
        assert client.get(f"{BASE}/validate", headers=_bearer(token)).status_code == 401

    def test_logout_twice_is_200(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        token = _login(client, identity)
        first = client.post(f"{BASE}/logout", headers=_bearer(token))
        second = client.post(f"{BASE}/logout", headers=_bearer(token))
        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer garbage"}, {"Authorization": "Basic abc"}])
    def test_logout_without_usable_token_is_200(self, api_client, headers) -> None:
        client, _, _ = api_client
        assert client.post(f"{BASE}/logout", headers=headers).status_code == 200

    def test_logout_leaves_other_sessions_alone(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity)
        phone = _login(client, identity)
        laptop = _login(client, identity)
        client.post(f"{BASE}/logout", headers=_bearer(phone))
        assert client.get(f"{BASE}/validate", headers=_bearer(laptop)).status_code == 200


class TestChangePassword:
    def test_change_password(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity, "old-password")
        token = _login(client, identity, "old-password")
        resp = client.post(
            f"{BASE}/password",
            json={"current_password": "old-password", "new_password": "new-password"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200
        _login(client, identity, "new-password")
        stale = client.post(f"{BASE}/login", json={"identity": identity, "password": "old-password"})
        assert stale.status_code == 401

    def test_wrong_current_password_is_401(self, api_client) -> None:
        client, _, _ = api_client
        identity = _unique()
        _register(client, identity, "old-password")
        token = _login(client, identity, "old-password")
        resp = client.post(
            f"{BASE}/password",
            json={"current_password": "guess", "new_password": "new-password"},
            headers=_bearer(token),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_requires_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(f"{BASE}/password", json={"current_password": "a", "new_password": "b"})
        assert resp.status_code == 401
