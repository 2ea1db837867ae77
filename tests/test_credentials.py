"""Tests for the per-user credential store and the token refresher."""

from __future__ import annotations

from datetime import datetime

import pytest
from google.auth.exceptions import RefreshError

from chatcal import token_refresher as token_refresher_module
from chatcal.credentials import CredentialStore
from chatcal.errors import AuthError
from chatcal.models import Credential
from chatcal.token_refresher import TokenRefresher


class FakeGoogleCredentials:
    instances: list = []

    def __init__(self, token, refresh_token, client_id, client_secret, token_uri):
        self.token = token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_uri = token_uri
        self.expiry = None
        self.refresh_requests = []
        FakeGoogleCredentials.instances.append(self)

    def refresh(self, request):
        self.refresh_requests.append(request)
        self.token = "new-access"
        self.expiry = datetime(2030, 1, 1, 0, 0, 0)


class RejectingGoogleCredentials(FakeGoogleCredentials):
    def refresh(self, request):
        raise RefreshError("invalid_grant: Token has been expired or revoked.")


@pytest.fixture
def fake_google_credentials(monkeypatch):
    FakeGoogleCredentials.instances = []
    monkeypatch.setattr(token_refresher_module, "Credentials", FakeGoogleCredentials)
    return FakeGoogleCredentials


# ---------------------------------------------------------------------------
# CredentialStore
# ---------------------------------------------------------------------------


def test_store_returns_none_for_unknown_user(tmp_path):
    assert CredentialStore(directory=tmp_path).get("nobody") is None


def test_store_saves_and_loads_credential(tmp_path):
    store = CredentialStore(directory=tmp_path)
    store.save(Credential(user_id="u1", access_token="a", refresh_token="r",
                          expires_at=123))

    loaded = store.get("u1")
    assert loaded is not None
    assert loaded.access_token == "a"
    assert loaded.refresh_token == "r"
    assert loaded.expires_at == 123


def test_store_ignores_corrupt_file(tmp_path):
    store = CredentialStore(directory=tmp_path)
    store.save(Credential(user_id="u1", access_token="a"))
    store._path("u1").write_text("{not json", encoding="utf-8")

    assert store.get("u1") is None


def test_store_keeps_users_apart(tmp_path):
    store = CredentialStore(directory=tmp_path)
    store.save(Credential(user_id="u1", access_token="a1"))
    store.save(Credential(user_id="u2", access_token="a2"))

    assert store.get("u1").access_token == "a1"
    assert store.get("u2").access_token == "a2"


def test_update_tokens_keeps_existing_refresh_token(tmp_path):
    store = CredentialStore(directory=tmp_path)
    store.save(Credential(user_id="u1", access_token="old", refresh_token="keep-me"))

    updated = store.update_tokens("u1", access_token="new", expires_at=999)

    assert updated.refresh_token == "keep-me"
    assert store.get("u1").access_token == "new"
    assert store.get("u1").expires_at == 999


def test_credential_expiry():
    credential = Credential(user_id="u1", expires_at=1000)
    assert credential.is_expired(now=1001)
    assert not credential.is_expired(now=999)
    assert not Credential(user_id="u1").is_expired()


# ---------------------------------------------------------------------------
# TokenRefresher
# ---------------------------------------------------------------------------


def test_refresh_without_refresh_token_fails_before_network(tmp_path, fake_google_credentials):
    refresher = TokenRefresher(CredentialStore(directory=tmp_path),
                               client_id="cid", client_secret="secret",
                               request_factory=lambda: pytest.fail("no request expected"))

    with pytest.raises(AuthError):
        refresher.refresh(Credential(user_id="u1", access_token="a"))
    assert fake_google_credentials.instances == []


def test_refresh_without_client_config_is_auth_error(tmp_path, fake_google_credentials):
    refresher = TokenRefresher(CredentialStore(directory=tmp_path),
                               client_id=None, client_secret=None)

    with pytest.raises(AuthError):
        refresher.refresh(Credential(user_id="u1", refresh_token="r"))


def test_refresh_persists_new_token_and_expiry(tmp_path, fake_google_credentials):
    store = CredentialStore(directory=tmp_path)
    credential = Credential(user_id="u1", access_token="old", refresh_token="r")
    store.save(credential)
    sentinel_request = object()
    refresher = TokenRefresher(store, client_id="cid", client_secret="secret",
                               token_uri="https://oauth2.example/token",
                               request_factory=lambda: sentinel_request)

    token = refresher.refresh(credential)

    assert token == "new-access"
    created = fake_google_credentials.instances[0]
    assert created.refresh_token == "r"
    assert created.client_id == "cid"
    assert created.token_uri == "https://oauth2.example/token"
    assert created.refresh_requests == [sentinel_request]
    stored = store.get("u1")
    assert stored.access_token == "new-access"
    assert stored.refresh_token == "r"
    assert stored.expires_at == 1893456000


def test_refresh_rejection_becomes_auth_error(tmp_path, monkeypatch):
    monkeypatch.setattr(token_refresher_module, "Credentials", RejectingGoogleCredentials)
    store = CredentialStore(directory=tmp_path)
    credential = Credential(user_id="u1", access_token="old", refresh_token="r")
    store.save(credential)
    refresher = TokenRefresher(store, client_id="cid", client_secret="secret",
                               request_factory=object)

    with pytest.raises(AuthError):
        refresher.refresh(credential)
    assert store.get("u1").access_token == "old"
