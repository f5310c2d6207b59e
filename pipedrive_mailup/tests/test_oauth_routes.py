"""
Tests for the OAuth routes: forward-auth, callback, logout and uninstall.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from pipedrive_mailup.models import AccountKey, CredentialRecord
from pipedrive_mailup.sessions import SESSION_COOKIE, SessionData, get_serializer

from .fakes import NOW, PIPEDRIVE_API, token_payload

KEY = AccountKey(company_id="100", user_id="200")
TOKEN_PATH = "/oauth/token"
REVOKE_PATH = "/oauth/revoke"


def stored_record(expires_at: float = NOW + 3600) -> CredentialRecord:
    return CredentialRecord(
        access_token="access-old",
        refresh_token="100:200:refresh-secret",
        expires_at=expires_at,
        scope="base",
        api_domain=PIPEDRIVE_API,
    )


def set_session(client, **values) -> None:
    client.cookies.set(SESSION_COOKIE, get_serializer().dumps(SessionData(**values).model_dump()))


def session_from(response) -> SessionData:
    return SessionData(**get_serializer().loads(response.cookies[SESSION_COOKIE]))


def start_flow(client) -> str:
    """Hit /auth and return the state nonce sent to Pipedrive."""
    response = client.get("/auth", follow_redirects=False)
    assert response.status_code == 307
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


class TestForwardAuth:

    def test_unbound_session_redirects_to_consent(self, client):
        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert location.netloc == "oauth.pipedrive.com"
        assert location.path == "/oauth/authorize"
        query = parse_qs(location.query)
        assert query["client_id"] == ["pd-client"]
        assert query["redirect_uri"] == ["http://testserver/auth/callback"]
        assert session_from(response).state == query["state"][0]

    def test_each_redirect_gets_a_fresh_nonce(self, client):
        assert start_flow(client) != start_flow(client)

    def test_bound_session_with_valid_token(self, client, token_store, upstream):
        token_store.put(KEY, stored_record())
        set_session(client, account_key=str(KEY))

        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 200
        assert response.headers["X-Pipedrive-Account"] == "100:200"
        assert response.json() == {
            "authenticated": True,
            "account_key": "100:200",
            "api_domain": PIPEDRIVE_API,
        }
        assert upstream.calls("POST", TOKEN_PATH) == []

    def test_bound_session_with_expired_token_refreshes(self, client, token_store, upstream):
        token_store.put(KEY, stored_record(expires_at=NOW))
        upstream.respond("POST", TOKEN_PATH, json=token_payload(access_token="access-new"))
        set_session(client, account_key=str(KEY))

        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 200
        assert token_store.get(KEY).access_token == "access-new"

    def test_failed_refresh_discards_credential_and_redirects(self, client, token_store, upstream):
        token_store.put(KEY, stored_record(expires_at=NOW))
        upstream.respond("POST", TOKEN_PATH, json={"error": "invalid_grant"}, status_code=400)
        set_session(client, account_key=str(KEY))

        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 307
        assert token_store.get(KEY) is None

    def test_non_json_refresh_response_discards_credential(self, client, token_store, upstream):
        token_store.put(KEY, stored_record(expires_at=NOW))
        upstream.add("POST", TOKEN_PATH, lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        set_session(client, account_key=str(KEY))

        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 307
        assert token_store.get(KEY) is None

    def test_bound_session_without_record_redirects(self, client):
        set_session(client, account_key=str(KEY))
        response = client.get("/auth", follow_redirects=False)
        assert response.status_code == 307

    def test_tampered_cookie_is_ignored(self, client):
        client.cookies.set(SESSION_COOKIE, "not-a-signed-value")
        response = client.get("/auth", follow_redirects=False)
        assert response.status_code == 307

    def test_login_starts_flow(self, client):
        response = client.get("/auth/login", follow_redirects=False)
        assert response.status_code == 307
        assert "state=" in response.headers["location"]


class TestCallback:

    def test_successful_callback_stores_and_binds(self, client, token_store, upstream):
        nonce = start_flow(client)
        upstream.respond("POST", TOKEN_PATH, json=token_payload())

        response = client.get("/auth/callback", params={"code": "auth-code", "state": nonce})

        assert response.status_code == 200
        assert "Pipedrive Connected" in response.text
        assert token_store.get(KEY).access_token == "access-1"
        bound = session_from(response)
        assert bound.account_key == "100:200"
        assert bound.state is None

    def test_success_redirects_when_configured(self, client, upstream, app_config, monkeypatch):
        monkeypatch.setattr(app_config, "AUTH_SUCCESS_URL", "https://app.example.com/done")
        nonce = start_flow(client)
        upstream.respond("POST", TOKEN_PATH, json=token_payload())

        response = client.get(
            "/auth/callback",
            params={"code": "auth-code", "state": nonce},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://app.example.com/done"

    def test_state_mismatch_is_rejected_without_exchange(self, client, token_store, upstream):
        start_flow(client)

        response = client.get("/auth/callback", params={"code": "auth-code", "state": "forged"})

        assert response.status_code == 400
        assert "Invalid OAuth state" in response.text
        assert upstream.calls("POST", TOKEN_PATH) == []
        assert len(token_store) == 0

    def test_state_without_session_nonce_is_rejected(self, client, upstream):
        response = client.get("/auth/callback", params={"code": "auth-code", "state": "anything"})

        assert response.status_code == 400
        assert upstream.calls("POST", TOKEN_PATH) == []

    def test_missing_state_from_pipedrive_referrer_is_accepted(self, client, token_store, upstream):
        upstream.respond("POST", TOKEN_PATH, json=token_payload())

        response = client.get(
            "/auth/callback",
            params={"code": "auth-code"},
            headers={"Referer": "https://acme.pipedrive.com/settings/marketplace"},
        )

        assert response.status_code == 200
        assert token_store.get(KEY) is not None

    @pytest.mark.parametrize("referer", [
        None,
        "https://evil.example.com/",
        "http://acme.pipedrive.com/",
        "https://pipedrive.com.evil.example/",
    ])
    def test_missing_state_from_other_referrer_is_rejected(self, client, token_store, upstream, referer):
        headers = {"Referer": referer} if referer else {}

        response = client.get("/auth/callback", params={"code": "auth-code"}, headers=headers)

        assert response.status_code == 400
        assert upstream.calls("POST", TOKEN_PATH) == []
        assert len(token_store) == 0

    def test_declined_consent(self, client, upstream):
        response = client.get("/auth/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert "declined" in response.text
        assert upstream.calls("POST", TOKEN_PATH) == []

    def test_missing_code(self, client):
        nonce = start_flow(client)
        response = client.get("/auth/callback", params={"state": nonce})
        assert response.status_code == 400

    def test_exchange_failure_returns_502(self, client, token_store, upstream):
        nonce = start_flow(client)
        upstream.respond("POST", TOKEN_PATH, json={"error": "invalid_grant"}, status_code=400)

        response = client.get("/auth/callback", params={"code": "bad", "state": nonce})

        assert response.status_code == 502
        assert len(token_store) == 0

    def test_non_json_exchange_response_returns_502(self, client, token_store, upstream):
        nonce = start_flow(client)
        upstream.add("POST", TOKEN_PATH, lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        response = client.get("/auth/callback", params={"code": "auth-code", "state": nonce})

        assert response.status_code == 502
        assert "Connection Failed" in response.text
        assert len(token_store) == 0

    def test_unparseable_refresh_token_returns_400(self, client, token_store, upstream):
        nonce = start_flow(client)
        upstream.respond("POST", TOKEN_PATH, json=token_payload(refresh_token="opaque"))

        response = client.get("/auth/callback", params={"code": "auth-code", "state": nonce})

        assert response.status_code == 400
        assert len(token_store) == 0


class TestLogout:

    def test_logout_clears_session_and_keeps_credential(self, client, token_store):
        token_store.put(KEY, stored_record())
        set_session(client, account_key=str(KEY))

        response = client.post("/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        assert SESSION_COOKIE in response.headers["set-cookie"]
        assert token_store.get(KEY) is not None


class TestUninstall:

    PAYLOAD = {"client_id": "pd-client", "company_id": 100, "user_id": 200, "timestamp": "2024-01-01 10:00:00"}

    def test_requires_pipedrive_credentials(self, client, token_store):
        token_store.put(KEY, stored_record())

        assert client.request("DELETE", "/uninstall", json=self.PAYLOAD).status_code == 401
        response = client.request("DELETE", "/uninstall", json=self.PAYLOAD, auth=("pd-client", "wrong"))
        assert response.status_code == 401
        assert token_store.get(KEY) is not None

    def test_revokes_and_deletes(self, client, token_store, upstream):
        token_store.put(KEY, stored_record())
        upstream.respond("POST", REVOKE_PATH, json={})

        response = client.request("DELETE", "/uninstall", json=self.PAYLOAD, auth=("pd-client", "pd-secret"))

        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked": True}
        assert token_store.get(KEY) is None
        body = dict(httpx.QueryParams(upstream.calls("POST", REVOKE_PATH)[0].content.decode()))
        assert body["token"] == "100:200:refresh-secret"

    def test_unknown_account_is_success_without_revoke(self, client, upstream):
        response = client.request("DELETE", "/uninstall", json=self.PAYLOAD, auth=("pd-client", "pd-secret"))

        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked": False}
        assert upstream.calls("POST", REVOKE_PATH) == []

    def test_revoke_failure_still_deletes(self, client, token_store, upstream):
        token_store.put(KEY, stored_record())
        upstream.respond("POST", REVOKE_PATH, json={"error": "server"}, status_code=500)

        response = client.request("DELETE", "/uninstall", json=self.PAYLOAD, auth=("pd-client", "pd-secret"))

        assert response.status_code == 502
        assert response.json() == {"detail": "Upstream service unavailable"}
        assert token_store.get(KEY) is None

    def test_malformed_payload(self, client, token_store):
        token_store.put(KEY, stored_record())

        response = client.request(
            "DELETE", "/uninstall", json={"client_id": "pd-client"}, auth=("pd-client", "pd-secret")
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request"}
        assert token_store.get(KEY) is not None

    def test_client_id_mismatch(self, client, token_store, upstream):
        token_store.put(KEY, stored_record())

        response = client.request(
            "DELETE",
            "/uninstall",
            json={**self.PAYLOAD, "client_id": "someone-else"},
            auth=("pd-client", "pd-secret"),
        )

        assert response.status_code == 400
        assert token_store.get(KEY) is not None
        assert upstream.calls("POST", REVOKE_PATH) == []
