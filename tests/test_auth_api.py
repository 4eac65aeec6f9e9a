"""Tests for the authentication API endpoints."""

import secrets
import uuid
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from sessionauth.services.login import compute_code_challenge
from sessionauth.services.token_codec import TokenKind
from tests.conftest import ALLOWED_REDIRECT_URI, refresh_cookie

pytestmark = pytest.mark.asyncio


async def _login(async_client, verifier: str | None = None):
    """Run the full URL + callback flow against the fake provider."""
    verifier = verifier or secrets.token_urlsafe(48)
    url_response = await async_client.get(
        "/auth/kakao/url",
        params={"redirect_uri": ALLOWED_REDIRECT_URI, "code_challenge": compute_code_challenge(verifier)},
    )
    assert url_response.status_code == 200
    state = url_response.json()["state"]

    return await async_client.post(
        "/auth/kakao/login",
        json={
            "code": "c1",
            "state": state,
            "code_verifier": verifier,
            "redirect_uri": ALLOWED_REDIRECT_URI,
        },
    )


class TestLoginUrl:
    async def test_login_url(self, async_client, state_store):
        challenge = compute_code_challenge("v" * 43)
        response = await async_client.get(
            "/auth/kakao/url",
            params={"redirect_uri": ALLOWED_REDIRECT_URI, "code_challenge": challenge},
        )

        assert response.status_code == 200
        data = response.json()
        params = parse_qs(urlparse(data["login_url"]).query)
        assert params["state"] == [data["state"]]
        assert params["code_challenge"] == [challenge]
        assert len(state_store) == 1

    async def test_untrusted_redirect(self, async_client, state_store):
        response = await async_client.get(
            "/auth/kakao/url",
            params={
                "redirect_uri": "https://evil.example.com/cb",
                "code_challenge": compute_code_challenge("v" * 43),
            },
        )

        assert response.status_code == 400
        assert response.json() == {
            "code": "invalid_redirect_uri",
            "message": "Redirect URI is not allowed",
        }
        assert len(state_store) == 0

    async def test_short_challenge(self, async_client):
        response = await async_client.get(
            "/auth/kakao/url",
            params={"redirect_uri": ALLOWED_REDIRECT_URI, "code_challenge": "short"},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_input"


class TestKakaoLogin:
    async def test_login_sets_cookie_and_hides_refresh_token(self, async_client):
        response = await _login(async_client)

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 1800
        assert data["nickname"] == "Ann"
        assert "refresh_token" not in data

        value, header = refresh_cookie(response)
        assert value
        assert "HttpOnly" in header
        assert "Secure" in header

    async def test_replayed_callback(self, async_client):
        verifier = secrets.token_urlsafe(48)
        url_response = await async_client.get(
            "/auth/kakao/url",
            params={"redirect_uri": ALLOWED_REDIRECT_URI, "code_challenge": compute_code_challenge(verifier)},
        )
        body = {
            "code": "c1",
            "state": url_response.json()["state"],
            "code_verifier": verifier,
            "redirect_uri": ALLOWED_REDIRECT_URI,
        }

        first = await async_client.post("/auth/kakao/login", json=body)
        second = await async_client.post("/auth/kakao/login", json=body)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["code"] == "invalid_state"

    async def test_wrong_verifier(self, async_client):
        url_response = await async_client.get(
            "/auth/kakao/url",
            params={
                "redirect_uri": ALLOWED_REDIRECT_URI,
                "code_challenge": compute_code_challenge("a" * 43),
            },
        )
        response = await async_client.post(
            "/auth/kakao/login",
            json={
                "code": "c1",
                "state": url_response.json()["state"],
                "code_verifier": "b" * 43,
                "redirect_uri": ALLOWED_REDIRECT_URI,
            },
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_code_verifier"

    async def test_short_verifier_rejected(self, async_client):
        response = await async_client.post(
            "/auth/kakao/login",
            json={"code": "c1", "state": "s", "code_verifier": "short", "redirect_uri": ALLOWED_REDIRECT_URI},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_input"

    async def test_provider_down(self, async_client, fake_kakao):
        fake_kakao.token_status = 503
        response = await _login(async_client)
        assert response.status_code == 502
        assert response.json()["code"] == "provider_unavailable"

    async def test_provider_rejects_code(self, async_client, fake_kakao):
        fake_kakao.token_status = 400
        fake_kakao.token_json = {"error": "invalid_grant"}
        response = await _login(async_client)
        assert response.status_code == 400
        assert response.json()["code"] == "token_exchange_failed"


class TestRefresh:
    async def test_rotation_and_replay(self, async_client):
        login = await _login(async_client)
        original, _ = refresh_cookie(login)

        refreshed = await async_client.post("/auth/refresh", headers={"Cookie": f"refreshToken={original}"})
        assert refreshed.status_code == 200
        rotated, _ = refresh_cookie(refreshed)
        assert rotated and rotated != original
        assert refreshed.json()["access_token"]

        replay = await async_client.post("/auth/refresh", headers={"Cookie": f"refreshToken={original}"})
        assert replay.status_code == 401
        assert replay.json()["code"] == "blacklisted_token"
        assert replay.headers["WWW-Authenticate"] == "Bearer"

    async def test_missing_cookie(self, async_client):
        response = await async_client.post("/auth/refresh")
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"

    async def test_body_token_ignored_in_cookie_mode(self, async_client):
        login = await _login(async_client)
        original, _ = refresh_cookie(login)

        response = await async_client.post("/auth/refresh", json={"refresh_token": original})
        assert response.status_code == 401

    async def test_expired_refresh_token(self, async_client, user_factory, token_factory):
        user = await user_factory()
        expired = token_factory(user, ttl=timedelta(seconds=-5))

        response = await async_client.post("/auth/refresh", headers={"Cookie": f"refreshToken={expired}"})
        assert response.status_code == 401
        assert response.json()["code"] == "expired_token"


class TestLogout:
    async def test_logout_clears_cookie_and_kills_token(self, async_client):
        login = await _login(async_client)
        token, _ = refresh_cookie(login)

        response = await async_client.post("/auth/logout", headers={"Cookie": f"refreshToken={token}"})

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        value, header = refresh_cookie(response)
        assert value == ""
        assert "Max-Age=0" in header

        refresh = await async_client.post("/auth/refresh", headers={"Cookie": f"refreshToken={token}"})
        assert refresh.json()["code"] == "blacklisted_token"

    async def test_logout_without_token(self, async_client):
        response = await async_client.post("/auth/logout")
        assert response.status_code == 200
        assert refresh_cookie(response)[0] == ""

    async def test_logout_with_garbage(self, async_client):
        response = await async_client.post("/auth/logout", headers={"Cookie": "refreshToken=garbage"})
        assert response.status_code == 200


class TestMe:
    async def test_me(self, async_client):
        login = await _login(async_client)
        access = login.json()["access_token"]

        response = await async_client.get("/auth/me", headers={"Authorization": f"Bearer {access}"})

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "kakao"
        assert data["name"] == "Ann"
        assert data["id"] == login.json()["user_id"]

    async def test_missing_header(self, async_client):
        response = await async_client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_refresh_token_not_accepted(self, async_client):
        login = await _login(async_client)
        refresh, _ = refresh_cookie(login)

        response = await async_client.get("/auth/me", headers={"Authorization": f"Bearer {refresh}"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"

    async def test_deleted_user(self, async_client, token_factory):
        access = token_factory(subject=str(uuid.uuid4()), kind=TokenKind.ACCESS)
        response = await async_client.get("/auth/me", headers={"Authorization": f"Bearer {access}"})
        assert response.status_code == 401
        assert response.json()["code"] == "user_not_found"


class TestHealth:
    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
