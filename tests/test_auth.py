"""
Identity & Access tests.

Tests cover:
  - Password hashing (bcrypt)
  - JWT generation / verification / expiry
  - verify(): missing, malformed, expired, unknown user, deactivated
  - Auth API: register, login, me, profile, password change
  - Route guards: require_auth, authorize
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from taskflow.core.exceptions import AuthenticationError
from taskflow.models import db
from taskflow.models.user import User
from taskflow.services import identity_service
from taskflow.services.jwt_service import ALGORITHM, decode_access_token, generate_access_token
from taskflow.utils.crypto import hash_password, verify_password


# ═══════════════════════════════════════════════════════════════
# Crypto & tokens
# ═══════════════════════════════════════════════════════════════

class TestPasswordHashing:
    def test_round_trip(self):
        hashed = hash_password("s3cret!", rounds=4)
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_garbage_hash_does_not_verify(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_subject_is_string_user_id(self, alice):
        payload = decode_access_token(generate_access_token(alice.id, alice.role))
        assert payload["sub"] == str(alice.id)
        assert payload["role"] == "user"
        assert payload["type"] == "access"

    def test_verify_returns_identity(self, alice):
        identity = identity_service.verify(identity_service.issue_token(alice))
        assert (identity.id, identity.role, identity.is_active) == (alice.id, "user", True)
        assert not identity.is_admin

    @pytest.mark.parametrize("token", [None, "", "garbage.token.value"])
    def test_missing_or_malformed(self, token):
        with pytest.raises(AuthenticationError):
            identity_service.verify(token)

    def test_expired(self, app, alice):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": str(alice.id), "type": "access", "iat": now - timedelta(days=2),
             "exp": now - timedelta(days=1)},
            app.config["JWT_SECRET_KEY"], algorithm=ALGORITHM,
        )
        with pytest.raises(AuthenticationError, match="expired"):
            identity_service.verify(token)

    def test_unknown_user(self):
        with pytest.raises(AuthenticationError, match="User not found"):
            identity_service.verify(generate_access_token(424242))

    def test_deactivated_user(self, alice):
        token = identity_service.issue_token(alice)
        alice.is_active = False
        db.session.commit()
        with pytest.raises(AuthenticationError, match="deactivated"):
            identity_service.verify(token)


# ═══════════════════════════════════════════════════════════════
# Register / login
# ═══════════════════════════════════════════════════════════════

class TestRegister:
    def test_register_returns_user_and_token(self, client):
        res = client.post("/api/auth/register", json={
            "name": "Dana", "email": "Dana@Acme.io", "password": "hunter22",
        })
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["user"]["email"] == "dana@acme.io"
        assert data["user"]["role"] == "user"
        assert "passwordHash" not in data["user"]
        assert identity_service.verify(data["token"]).id == data["user"]["id"]

    def test_admin_role_is_downgraded(self, client):
        res = client.post("/api/auth/register", json={
            "name": "Eve", "email": "eve@acme.io", "password": "hunter22", "role": "admin",
        })
        assert res.get_json()["data"]["user"]["role"] == "user"

    def test_duplicate_email_case_insensitive(self, client, alice):
        res = client.post("/api/auth/register", json={
            "name": "Alice Again", "email": "ALICE@acme.io", "password": "hunter22",
        })
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_DUPLICATE"
        assert body["message"] == "An account with this email already exists"

    def test_field_errors(self, client):
        res = client.post("/api/auth/register", json={"name": "X", "email": "nope", "password": "123"})
        assert res.status_code == 400
        fields = sorted(e["field"] for e in res.get_json()["errors"])
        assert fields == ["email", "name", "password"]


class TestLogin:
    def test_login_stamps_last_login(self, client, alice):
        assert alice.last_login is None
        res = client.post("/api/auth/login", json={"email": "alice@acme.io", "password": "Secret123"})
        assert res.status_code == 200
        assert res.get_json()["data"]["token"]
        db.session.refresh(alice)
        assert alice.last_login is not None

    @pytest.mark.parametrize("email,password", [
        ("alice@acme.io", "wrong-password"),
        ("nobody@acme.io", "Secret123"),
    ])
    def test_bad_credentials(self, client, alice, email, password):
        res = client.post("/api/auth/login", json={"email": email, "password": password})
        assert res.status_code == 401
        assert res.get_json()["message"] == "Invalid email or password"

    def test_deactivated_account(self, client, alice):
        alice.is_active = False
        db.session.commit()
        res = client.post("/api/auth/login", json={"email": "alice@acme.io", "password": "Secret123"})
        assert res.status_code == 401


# ═══════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════

class TestProfile:
    def test_me(self, client, alice, auth_header):
        res = client.get("/api/auth/me", headers=auth_header(alice))
        assert res.get_json()["data"]["user"]["id"] == alice.id

    def test_me_requires_token(self, client):
        res = client.get("/api/auth/me")
        assert res.status_code == 401
        assert res.get_json()["success"] is False

    def test_update_profile_ignores_role(self, client, alice, auth_header):
        res = client.put("/api/auth/profile", json={"bio": "Hi", "department": "Ops", "role": "admin"},
                         headers=auth_header(alice))
        user = res.get_json()["data"]["user"]
        assert (user["bio"], user["department"], user["role"]) == ("Hi", "Ops", "user")

    def test_change_password(self, client, alice, auth_header):
        headers = auth_header(alice)
        res = client.put("/api/auth/password",
                         json={"currentPassword": "wrong", "newPassword": "another1"}, headers=headers)
        assert res.status_code == 401

        res = client.put("/api/auth/password",
                         json={"currentPassword": "Secret123", "newPassword": "another1"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["token"]
        assert verify_password("another1", db.session.get(User, alice.id).password_hash)

    def test_new_password_too_short(self, client, alice, auth_header):
        res = client.put("/api/auth/password",
                         json={"currentPassword": "Secret123", "newPassword": "abc"},
                         headers=auth_header(alice))
        assert res.status_code == 400


class TestGuards:
    def test_authorize_rejects_role(self, client, alice, bob, auth_header):
        res = client.put(f"/api/users/{bob.id}", json={"name": "Robert"}, headers=auth_header(alice))
        assert res.status_code == 403
        assert res.get_json()["message"] == "User role 'user' is not authorized to access this route"

    def test_non_bearer_header_ignored(self, client, alice):
        res = client.get("/api/auth/me", headers={"Authorization": "Basic abc"})
        assert res.status_code == 401
