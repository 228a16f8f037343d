"""
Tests for registration, login, provider probe and profile lookup.
"""

import pytest
from sqlalchemy.exc import OperationalError

from storefront import storage
from storefront.models import AuthUser, UserProfile
from tests.helpers import login, register


class TestRegister:

    def test_register_success(self, client):
        response = register(client)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Account created successfully"
        assert data["user"]["email"] == "alice@example.com"
        assert data["user"]["name"] == "Alice"
        assert data["user"]["role"] == "customer"
        assert data["user"]["id"]

    def test_password_is_hashed(self, client, database):
        register(client)

        with database.session() as db:
            user = db.query(AuthUser).filter(AuthUser.email == "alice@example.com").one()
            assert user.password_hash != "secret123"
            assert user.password_hash.startswith("$argon2")
            profile = db.get(UserProfile, user.id)
            assert profile.name == "Alice"

    def test_name_defaults_to_email_local_part(self, client):
        response = register(client, email="bob@example.com", name=None)

        assert response.status_code == 200
        assert response.json()["user"]["name"] == "bob"

    @pytest.mark.parametrize("body", [
        {"password": "secret123"},
        {"email": "alice@example.com"},
        {"email": "", "password": "secret123"},
    ])
    def test_missing_fields(self, client, body):
        response = client.post("/api/auth/register", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Email and password are required"}

    def test_short_password_does_not_reach_store(self, client, monkeypatch):
        calls = []
        monkeypatch.setattr(storage, "register_user", lambda *args, **kwargs: calls.append(args))

        response = register(client, password="12345")

        assert response.status_code == 400
        assert "at least 6" in response.json()["error"]
        assert calls == []

    def test_duplicate_email_rejected(self, client):
        assert register(client).status_code == 200

        response = register(client, email="Alice@Example.com")

        assert response.status_code == 400
        assert response.json() == {"error": "Email is already registered"}

    def test_store_failure(self, client, monkeypatch):
        def store_down(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(storage, "register_user", store_down)

        response = register(client)

        assert response.status_code == 500
        assert "connection refused" not in response.json()["error"]

    def test_hasher_failure_returns_json_error(self, error_client, monkeypatch):
        def broken_hash(password):
            raise RuntimeError("hasher unavailable")

        monkeypatch.setattr(error_client.app.state.hasher, "hash", broken_hash)

        response = register(error_client)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_invalid_json(self, client):
        response = client.post(
            "/api/auth/register",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestLogin:

    def test_login_issues_session(self, client):
        register(client)

        response = login(client)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["token"]
        assert data["user"]["email"] == "alice@example.com"
        assert "session" in response.cookies

    def test_wrong_password(self, client):
        register(client)

        response = login(client, password="wrong-password")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}

    def test_unknown_user(self, client):
        assert login(client).status_code == 401

    def test_missing_fields(self, client):
        response = client.post("/api/auth/login", json={"email": "alice@example.com"})
        assert response.status_code == 400

    def test_logout_revokes_session(self, client, auth_headers):
        assert client.get("/api/user/profile", headers=auth_headers).status_code == 200

        response = client.post("/api/auth/logout", headers=auth_headers)

        assert response.status_code == 200
        assert client.get("/api/user/profile", headers=auth_headers).status_code == 401


class TestCheckProvider:

    def test_unknown_email(self, client):
        response = client.post("/api/auth/check-provider", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert response.json() == {"isGoogleUser": False, "userExists": False}

    def test_password_user(self, client):
        register(client)

        response = client.post("/api/auth/check-provider", json={"email": "alice@example.com"})

        assert response.json() == {"isGoogleUser": False, "userExists": True}

    def test_passwordless_user(self, client, database):
        with database.session() as db:
            db.add(AuthUser(email="google@example.com", password_hash=""))
            db.commit()

        response = client.post("/api/auth/check-provider", json={"email": "google@example.com"})

        assert response.json() == {"isGoogleUser": True, "userExists": True}

    def test_missing_email(self, client):
        response = client.post("/api/auth/check-provider", json={})
        assert response.status_code == 400


class TestProfile:

    def test_no_session(self, client):
        response = client.get("/api/user/profile")

        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/user/profile", headers={"Authorization": "Bearer bogus"})
        assert response.status_code == 401

    def test_profile_via_bearer(self, client, auth_headers):
        response = client.get("/api/user/profile", headers=auth_headers)

        assert response.status_code == 200
        profile = response.json()["profile"]
        assert profile["email"] == "alice@example.com"
        assert profile["name"] == "Alice"
        assert profile["role"] == "customer"

    def test_profile_via_cookie(self, client):
        register(client)
        login(client)

        response = client.get("/api/user/profile")

        assert response.status_code == 200

    def test_profile_missing(self, client, auth_headers, database):
        with database.session() as db:
            db.query(UserProfile).delete()
            db.commit()

        response = client.get("/api/user/profile", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Profile not found"}
