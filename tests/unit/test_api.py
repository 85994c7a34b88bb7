"""Tests for the HTTP routes: provider administration and the login flow."""

from collections.abc import Iterator
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from authcore.oauth.service import OAuthService
from authcore.server import create_app
from tests.conftest import AUTHORIZATION_URL, JWKS_URL, TOKEN_URL


@pytest.fixture
def api_service(app_config, clock) -> OAuthService:
    return OAuthService(app_config, clock=clock, monotonic_clock=clock)


@pytest.fixture
def client(app_config, api_service, idp) -> Iterator[TestClient]:
    """Test client serving an injected service; the identity provider is mocked."""
    with TestClient(create_app(config=app_config, service=api_service)) as test_client:
        yield test_client
        test_client.portal.call(api_service.aclose)


@pytest.fixture
def google(client, google_provider) -> dict:
    response = client.post("/oauth2/providers", json=google_provider)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_provider_hides_secret(google):
    assert google["id"] == "google-oauth2"
    assert google["kind"] == "oidc"
    assert "client_secret" not in google


def test_create_invalid_provider(client, github_provider):
    response = client.post("/oauth2/providers", json={**github_provider, "token_url": ""})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "configuration_error"
    assert "token_url" in body["error_description"]


def test_list_get_update_delete(client, google, github_provider):
    client.post("/oauth2/providers", json=github_provider)

    listed = client.get("/oauth2/providers", params={"organization_id": "acme"}).json()
    assert [p["id"] for p in listed] == ["github"]
    assert [p["id"] for p in client.get("/oauth2/providers").json()] == ["google-oauth2"]

    fetched = client.get("/oauth2/providers/github").json()
    assert fetched["client_id"] == "gh-client"
    assert "client_secret" not in fetched

    updated = client.put("/oauth2/providers/github", json={"name": "GitHub"})
    assert updated.status_code == 200
    assert updated.json()["name"] == "GitHub"

    assert client.delete("/oauth2/providers/github").status_code == 204
    missing = client.get("/oauth2/providers/github")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_update_cannot_change_kind(client, google):
    response = client.put("/oauth2/providers/google-oauth2", json={"kind": "oauth2"})
    assert response.status_code == 400


def test_authorize_redirects_to_provider(client, google):
    response = client.get(
        "/oauth2/google-oauth2/authorize",
        params={"login_hint": "ada@example.com"},
        follow_redirects=False,
    )

    assert response.status_code == 307
    location = response.headers["location"]
    assert location.startswith(AUTHORIZATION_URL)
    query = parse_qs(urlsplit(location).query)
    assert query["login_hint"] == ["ada@example.com"]
    assert query["code_challenge_method"] == ["S256"]
    assert "redirect" not in query


def test_authorize_as_json_does_not_leak_verifier(client, google):
    response = client.get("/oauth2/google-oauth2/authorize", params={"redirect": "false"})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"url", "state", "nonce"}


def test_authorize_disabled_provider(client, google):
    client.put("/oauth2/providers/google-oauth2", json={"enabled": False})
    response = client.get("/oauth2/google-oauth2/authorize", follow_redirects=False)
    assert response.status_code == 400
    assert response.json()["error"] == "provider_disabled"


def test_authorize_unknown_provider(client):
    response = client.get("/oauth2/nope/authorize", follow_redirects=False)
    assert response.status_code == 404


def test_callback_with_provider_error_spends_state(client, api_service, google):
    state = client.get(
        "/oauth2/google-oauth2/authorize", params={"redirect": "false"}
    ).json()["state"]

    response = client.get(
        "/oauth2/google-oauth2/callback",
        params={"state": state, "error": "access_denied", "error_description": "User said no"},
    )

    assert response.status_code == 401
    assert response.json()["error_code"] == "access_denied"
    assert state not in api_service.requests


def test_callback_with_unknown_state(client, google, idp):
    token_route = idp.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={}))
    response = client.get(
        "/oauth2/google-oauth2/callback", params={"state": "forged", "code": "4/0A"}
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_state"
    assert token_route.call_count == 0


def test_callback_success(client, google, idp, jwks_document, make_id_token):
    idp.get(JWKS_URL).mock(return_value=httpx.Response(200, json=jwks_document))
    login = client.get("/oauth2/google-oauth2/authorize", params={"redirect": "false"}).json()
    idp.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "access_token": "ya29.access",
                "id_token": make_id_token(claims_override={"nonce": login["nonce"]}),
                "expires_in": 3599,
            },
        )
    )

    response = client.get(
        "/oauth2/google-oauth2/callback", params={"state": login["state"], "code": "4/0A"}
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == "ada@example.com"
    assert body["tokens"]["access_token"] == "ya29.access"


def test_refresh_route(client, google, idp):
    idp.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"access_token": "new"}))
    response = client.post("/oauth2/google-oauth2/refresh", json={"refresh_token": "1//r"})

    assert response.status_code == 200
    assert response.json()["tokens"]["refresh_token"] == "1//r"


def test_refresh_route_upstream_failure(client, google, idp):
    idp.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_grant"}))
    response = client.post("/oauth2/google-oauth2/refresh", json={"refresh_token": "1//r"})
    assert response.status_code == 502


def test_revoke_route_without_endpoint(client, google):
    response = client.post("/oauth2/google-oauth2/revoke", json={"token": "ya29.access"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "revoked": False}


def test_validate_route(client, google, idp, jwks_document, make_id_token):
    idp.get(JWKS_URL).mock(return_value=httpx.Response(200, json=jwks_document))

    ok = client.post("/oauth2/google-oauth2/validate", json={"id_token": make_id_token()})
    bad = client.post(
        "/oauth2/google-oauth2/validate", json={"id_token": make_id_token(kid=None)}
    )

    assert ok.status_code == 200
    assert ok.json()["payload"]["sub"] == "110169484474386276334"
    assert bad.status_code == 401
    assert bad.json()["reason"] == "missing_kid"


def test_connection_test_route(client, google, idp):
    idp.get("https://accounts.google.com/.well-known/openid-configuration").mock(
        return_value=httpx.Response(500)
    )
    response = client.post("/oauth2/providers/google-oauth2/test")
    assert response.status_code == 502
    assert response.json()["success"] is False
