"""
Integration Tests for the Auth API

Reliability Level: L6 Critical

Tests registration, login, bearer authentication, profile updates,
refresh tokens and the forgot / reset password flow through the
FastAPI app with an in-memory database.
"""

import re

import pytest

from app.auth.security import create_refresh_token

PREFIX = "/api/v1/auth"


def _register(client, email="racer@racefi.io", password="hunter22", **extra):
    body = {"name": "Racer", "email": email, "password": password}
    body.update(extra)
    return client.post(f"{PREFIX}/register", json=body)


class TestRegister:

    def test_register_returns_tokens(self, client) -> None:
        response = _register(client)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["token"] and body["refresh_token"]
        assert body["user"]["email"] == "racer@racefi.io"
        assert body["user"]["role"] == "user"
        assert "password_hash" not in body["user"]
        assert response.cookies.get("token") == body["token"]

    def test_requested_role_is_downgraded(self, client) -> None:
        response = _register(client, role="admin")
        assert response.json()["user"]["role"] == "user"

    def test_duplicate_email(self, client) -> None:
        _register(client)
        response = _register(client, email="RACER@racefi.io")
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "AUTH-400"

    @pytest.mark.parametrize("body", [
        {"name": "Racer", "email": "not-an-email", "password": "hunter22"},
        {"name": "Racer", "email": "racer@racefi.io", "password": "short"},
        {"email": "racer@racefi.io", "password": "hunter22"},
    ])
    def test_validation(self, client, body) -> None:
        assert client.post(f"{PREFIX}/register", json=body).status_code == 422


class TestLogin:

    def test_login(self, client) -> None:
        _register(client)
        response = client.post(
            f"{PREFIX}/login", json={"email": "Racer@RaceFi.io", "password": "hunter22"}
        )
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "racer@racefi.io"

    def test_wrong_password(self, client) -> None:
        _register(client)
        response = client.post(
            f"{PREFIX}/login", json={"email": "racer@racefi.io", "password": "hunter23"}
        )
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "AUTH-401"

    def test_unknown_email_same_error(self, client) -> None:
        response = client.post(
            f"{PREFIX}/login", json={"email": "ghost@racefi.io", "password": "hunter22"}
        )
        assert response.status_code == 401
        assert response.json()["detail"]["message"] == "Invalid email or password"


class TestMe:

    def test_me_with_token(self, client) -> None:
        token = _register(client).json()["token"]
        response = client.get(f"{PREFIX}/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["email"] == "racer@racefi.io"

    def test_missing_header(self, client) -> None:
        response = client.get(f"{PREFIX}/me")
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "SEC-001"

    def test_wrong_scheme(self, client) -> None:
        response = client.get(f"{PREFIX}/me", headers={"Authorization": "Basic abc"})
        assert response.json()["detail"]["error_code"] == "SEC-001"

    def test_garbage_token(self, client) -> None:
        response = client.get(f"{PREFIX}/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "SEC-003"

    def test_refresh_token_not_accepted_as_bearer(self, client) -> None:
        refresh_token = _register(client).json()["refresh_token"]
        response = client.get(
            f"{PREFIX}/me", headers={"Authorization": f"Bearer {refresh_token}"}
        )
        assert response.status_code == 401

    def test_update_me(self, client, user, auth_headers) -> None:
        response = client.put(
            f"{PREFIX}/me", json={"name": "Renamed"}, headers=auth_headers(user)
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

    def test_update_me_rejects_role(self, client, user, auth_headers) -> None:
        response = client.put(
            f"{PREFIX}/me", json={"role": "admin"}, headers=auth_headers(user)
        )
        assert response.status_code == 422

    def test_update_me_email_taken(self, client, user, other_user, auth_headers) -> None:
        response = client.put(
            f"{PREFIX}/me", json={"email": other_user.email}, headers=auth_headers(user)
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "AUTH-400"

    def test_password_change_applies(self, client) -> None:
        token = _register(client).json()["token"]
        client.put(
            f"{PREFIX}/me",
            json={"password": "new-password"},
            headers={"Authorization": f"Bearer {token}"},
        )
        response = client.post(
            f"{PREFIX}/login", json={"email": "racer@racefi.io", "password": "new-password"}
        )
        assert response.status_code == 200


class TestRefresh:

    def test_refresh(self, client) -> None:
        refresh_token = _register(client).json()["refresh_token"]
        response = client.post(f"{PREFIX}/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["token"] and body["refresh_token"]

    def test_access_token_rejected(self, client) -> None:
        access_token = _register(client).json()["token"]
        response = client.post(f"{PREFIX}/refresh", json={"refresh_token": access_token})
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "SEC-003"

    def test_unknown_subject(self, client) -> None:
        response = client.post(
            f"{PREFIX}/refresh", json={"refresh_token": create_refresh_token("ghost")}
        )
        assert response.status_code == 401


class TestPasswordReset:

    def _issue_token(self, client, caplog) -> str:
        with caplog.at_level("INFO", logger="app.api.auth"):
            response = client.post(
                f"{PREFIX}/forgot-password", json={"email": "racer@racefi.io"}
            )
        assert response.status_code == 200
        match = re.search(r"reset-password/([A-Za-z0-9_\-]+)", caplog.text)
        assert match is not None
        return match.group(1)

    def test_full_flow(self, client, caplog) -> None:
        _register(client)
        token = self._issue_token(client, caplog)

        response = client.put(
            f"{PREFIX}/reset-password/{token}", json={"password": "brand-new-pw"}
        )
        assert response.status_code == 200
        assert response.json()["token"]

        login = client.post(
            f"{PREFIX}/login", json={"email": "racer@racefi.io", "password": "brand-new-pw"}
        )
        assert login.status_code == 200

    def test_token_single_use(self, client, caplog) -> None:
        _register(client)
        token = self._issue_token(client, caplog)
        client.put(f"{PREFIX}/reset-password/{token}", json={"password": "brand-new-pw"})
        response = client.put(
            f"{PREFIX}/reset-password/{token}", json={"password": "another-pw"}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Invalid or expired token"

    def test_unknown_email(self, client) -> None:
        response = client.post(
            f"{PREFIX}/forgot-password", json={"email": "ghost@racefi.io"}
        )
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "AUTH-404"
