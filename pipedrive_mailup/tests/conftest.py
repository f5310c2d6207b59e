"""
Pytest fixtures for the integration tests.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from pipedrive_mailup.config import config, state
from pipedrive_mailup.mailup import MailUpClient, MailUpCredential
from pipedrive_mailup.message_cache import MessageDetailCache, mailup_detail_loader
from pipedrive_mailup.pipedrive import PipedriveClient, PipedriveOAuth
from pipedrive_mailup.server import app
from pipedrive_mailup.stats import StatsPipeline
from pipedrive_mailup.tokens import TokenManager, TokenStore

from .fakes import MAILUP_API, MAILUP_TOKEN_URL, PIPEDRIVE_OAUTH, FakeClock, FakeUpstream


@pytest.fixture(autouse=True)
def app_config(monkeypatch, tmp_path):
    """Required settings for every test."""
    monkeypatch.setattr(config, "BASIC_AUTH_USER", "panel-user")
    monkeypatch.setattr(config, "BASIC_AUTH_PASS", "panel-pass")
    monkeypatch.setattr(config, "PIPEDRIVE_CLIENT_ID", "pd-client")
    monkeypatch.setattr(config, "PIPEDRIVE_CLIENT_SECRET", "pd-secret")
    monkeypatch.setattr(config, "SESSION_SECRET", "test-secret-for-signing-sessions")
    monkeypatch.setattr(config, "SESSION_SECURE", False)
    monkeypatch.setattr(config, "AUTH_SUCCESS_URL", "")
    monkeypatch.setattr(config, "INTERNAL_API_KEY", "")
    monkeypatch.setattr(config, "MAILUP_CLIENT_ID", "mu-client")
    monkeypatch.setattr(config, "MAILUP_CLIENT_SECRET", "mu-secret")
    monkeypatch.setattr(config, "MAILUP_USERNAME", "mu-user")
    monkeypatch.setattr(config, "MAILUP_PASSWORD", "mu-pass")
    monkeypatch.setattr(config, "TOKEN_STORE_PATH", tmp_path / "tokens.json")
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    """Fake Pipedrive/MailUp with a working MailUp token endpoint."""
    fake = FakeUpstream()
    fake.respond(
        "POST",
        "/Authorization/OAuth/Token",
        json={"access_token": "mailup-token", "expires_in": 3600},
    )
    return fake


@pytest.fixture
def http(upstream):
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "tokens.json")


@pytest.fixture
def oauth(http, clock):
    return PipedriveOAuth(
        http,
        client_id="pd-client",
        client_secret="pd-secret",
        redirect_uri="http://testserver/auth/callback",
        base_url=PIPEDRIVE_OAUTH,
        clock=clock,
    )


@pytest.fixture
def token_manager(token_store, oauth, clock):
    return TokenManager(token_store, oauth, clock=clock)


@pytest.fixture
def mailup(http, clock):
    credential = MailUpCredential(
        http,
        client_id="mu-client",
        client_secret="mu-secret",
        username="mu-user",
        password="mu-pass",
        token_url=MAILUP_TOKEN_URL,
        clock=clock,
    )
    return MailUpClient(http, credential, base_url=MAILUP_API)


@pytest.fixture
def message_cache(mailup):
    return MessageDetailCache(mailup_detail_loader(mailup, max_field_length=40))


@pytest.fixture
def pipeline(token_manager, http, mailup, message_cache):
    return StatsPipeline(token_manager, PipedriveClient(http), mailup, message_cache)


@pytest.fixture
def client(http, token_store, token_manager, message_cache, pipeline):
    """Test client wired to the fake upstream and an isolated token store."""
    original = (state.http, state.token_store, state.token_manager, state.message_cache, state.pipeline)

    state.http = http
    state.token_store = token_store
    state.token_manager = token_manager
    state.message_cache = message_cache
    state.pipeline = pipeline

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    (state.http, state.token_store, state.token_manager, state.message_cache, state.pipeline) = original
