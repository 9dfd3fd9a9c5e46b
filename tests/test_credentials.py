from __future__ import annotations

import json
import stat
import threading
import time
from unittest.mock import Mock, patch

import pytest

from lyricsync.auth.credentials import CredentialManager, CredentialState
from lyricsync.auth.oauth import SpotifyOAuth, TokenResponse
from lyricsync.auth.store import Credential, CredentialMirror, TokenFileStore, read_mirrored_credential
from lyricsync.errors import CredentialInvalid, NetworkFailure
from lyricsync.shared import SharedStore

NOW = 1_700_000_000.0


def _manager(tmp_path, cred: Credential | None, oauth=None):
    store = TokenFileStore(tmp_path / "credentials.json")
    if cred is not None:
        store.save(cred)
    shared = SharedStore(tmp_path / "shared.json")
    mgr = CredentialManager(oauth or Mock(spec=SpotifyOAuth), store, CredentialMirror(shared), clock=lambda: NOW)
    return mgr, store, shared


def test_states(tmp_path):
    mgr, _, _ = _manager(tmp_path, None)
    assert mgr.state is CredentialState.ABSENT

    mgr, _, _ = _manager(tmp_path, Credential("a", "r", NOW + 3600))
    assert mgr.state is CredentialState.VALID

    mgr, _, _ = _manager(tmp_path, Credential("a", "r", NOW + 299))
    assert mgr.state is CredentialState.EXPIRING


def test_valid_token_skips_refresh(tmp_path):
    oauth = Mock(spec=SpotifyOAuth)
    mgr, _, _ = _manager(tmp_path, Credential("live", "r", NOW + 3600), oauth)
    assert mgr.with_valid_token(lambda tok: tok.upper()) == "LIVE"
    oauth.refresh.assert_not_called()


def test_absent_raises(tmp_path):
    mgr, _, _ = _manager(tmp_path, None)
    with pytest.raises(CredentialInvalid):
        mgr.access_token()


def test_concurrent_callers_share_one_refresh(tmp_path):
    calls = []
    gate = threading.Event()

    def slow_refresh(refresh_token):
        calls.append(refresh_token)
        gate.wait(2.0)
        return TokenResponse("fresh", None, 3600)

    oauth = Mock(spec=SpotifyOAuth)
    oauth.refresh.side_effect = slow_refresh
    mgr, store, shared = _manager(tmp_path, Credential("stale", "r1", NOW + 10), oauth)

    results: list[str] = []
    threads = [threading.Thread(target=lambda: results.append(mgr.access_token())) for _ in range(3)]
    for th in threads:
        th.start()
    time.sleep(0.2)
    gate.set()
    for th in threads:
        th.join(5.0)

    assert calls == ["r1"]
    assert results == ["fresh", "fresh", "fresh"]
    saved = store.load()
    assert saved.access_token == "fresh"
    assert saved.refresh_token == "r1"
    assert shared.get("spotify_access_token") == "fresh"


def test_rejected_refresh_logs_out(tmp_path):
    oauth = Mock(spec=SpotifyOAuth)
    oauth.refresh.side_effect = CredentialInvalid("invalid_grant")
    mgr, store, shared = _manager(tmp_path, Credential("stale", "r1", NOW), oauth)

    with pytest.raises(CredentialInvalid):
        mgr.access_token()
    assert mgr.state is CredentialState.ABSENT
    assert store.load() is None
    assert read_mirrored_credential(shared) is None


def test_network_failure_keeps_credential(tmp_path):
    oauth = Mock(spec=SpotifyOAuth)
    oauth.refresh.side_effect = [NetworkFailure("offline"), TokenResponse("fresh", "r2", 3600)]
    mgr, store, _ = _manager(tmp_path, Credential("stale", "r1", NOW), oauth)

    with pytest.raises(NetworkFailure):
        mgr.access_token()
    assert mgr.state is CredentialState.EXPIRING

    assert mgr.access_token() == "fresh"
    assert store.load().refresh_token == "r2"


def test_logout_clears_store_and_mirror(tmp_path):
    mgr, store, shared = _manager(tmp_path, Credential("a", "r", NOW + 3600))
    assert read_mirrored_credential(shared) is not None

    mgr.logout()
    assert not store.path.exists()
    assert read_mirrored_credential(shared) is None
    assert not mgr.logged_in


def test_login_exchanges_code(tmp_path):
    oauth = Mock(spec=SpotifyOAuth)
    oauth.exchange_code.return_value = TokenResponse("acc", "ref", 3600)
    mgr, store, _ = _manager(tmp_path, None, oauth)

    cred = mgr.login("the-code")
    oauth.exchange_code.assert_called_once_with("the-code")
    assert cred.expires_at == NOW + 3600
    assert store.load() == cred
    assert mgr.state is CredentialState.VALID


def test_invalidate_access_forces_refresh(tmp_path):
    oauth = Mock(spec=SpotifyOAuth)
    oauth.refresh.return_value = TokenResponse("fresh", None, 3600)
    mgr, _, _ = _manager(tmp_path, Credential("live", "r", NOW + 3600), oauth)

    mgr.invalidate_access()
    assert mgr.access_token() == "fresh"
    oauth.refresh.assert_called_once_with("r")


def test_token_file_is_private(tmp_path):
    store = TokenFileStore(tmp_path / "c.json")
    store.save(Credential("a", "r", NOW))
    mode = stat.S_IMODE(store.path.stat().st_mode)
    assert mode == 0o600
    assert json.loads(store.path.read_text())["refresh_token"] == "r"


def test_credential_repr_hides_tokens():
    assert "secret" not in repr(Credential("secret", "secret", NOW))


class TestOAuth:
    def _resp(self, status, body):
        r = Mock()
        r.status_code = status
        r.json.return_value = body
        return r

    def test_refresh_posts_grant(self):
        oauth = SpotifyOAuth("id", "sec", "http://127.0.0.1/cb")
        with patch("lyricsync.auth.oauth.requests.post") as post:
            post.return_value = self._resp(200, {"access_token": "a", "expires_in": 3600})
            resp = oauth.refresh("r1")
        assert resp == TokenResponse("a", None, 3600.0)
        assert post.call_args.kwargs["data"] == {"grant_type": "refresh_token", "refresh_token": "r1"}
        assert post.call_args.kwargs["auth"] == ("id", "sec")

    def test_rejected_grant(self):
        oauth = SpotifyOAuth("id", "sec", "http://127.0.0.1/cb")
        with patch("lyricsync.auth.oauth.requests.post") as post:
            post.return_value = self._resp(400, {"error": "invalid_grant"})
            with pytest.raises(CredentialInvalid, match="invalid_grant"):
                oauth.refresh("r1")

    def test_server_error_is_network_failure(self):
        oauth = SpotifyOAuth("id", "sec", "http://127.0.0.1/cb")
        with patch("lyricsync.auth.oauth.requests.post") as post:
            post.return_value = self._resp(503, {})
            with pytest.raises(NetworkFailure):
                oauth.refresh("r1")

    def test_code_from_redirect(self):
        assert SpotifyOAuth.code_from_redirect("abc") == "abc"
        assert SpotifyOAuth.code_from_redirect("http://127.0.0.1:8888/callback?code=xyz&state=s") == "xyz"

    def test_authorize_url(self):
        url = SpotifyOAuth("id", "sec", "http://127.0.0.1/cb").authorize_url("st")
        assert url.startswith("https://accounts.spotify.com/authorize?")
        assert "client_id=id" in url
        assert "state=st" in url
