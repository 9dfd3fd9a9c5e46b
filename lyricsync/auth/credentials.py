from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, TypeVar

from lyricsync.config import AppConfig
from lyricsync.errors import CredentialInvalid, NetworkFailure, ParseFailure, PreconditionFailed
from lyricsync.shared import SharedStore

from .oauth import SpotifyOAuth
from .store import Credential, CredentialMirror, TokenFileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

REFRESH_MARGIN_S = 300.0


class CredentialState(enum.Enum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRING = "expiring"


class _Refresh:
    """One in-flight refresh; followers wait on ``done``."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.credential: Credential | None = None
        self.error: BaseException | None = None


class CredentialManager:
    """
    Owns the OAuth credential: login, logout and refresh.

    ``with_valid_token`` refreshes at most once per expiry no matter how many
    threads ask at the same time: the first caller performs the request, the
    others block until it finishes and see the same token or the same error.
    """

    def __init__(
        self,
        oauth: SpotifyOAuth,
        store: TokenFileStore,
        mirror: CredentialMirror | None = None,
        *,
        refresh_margin_s: float = REFRESH_MARGIN_S,
        clock: Callable[[], float] = time.time,
    ):
        self.oauth = oauth
        self.store = store
        self.mirror = mirror
        self.refresh_margin_s = refresh_margin_s
        self._clock = clock
        self._lock = threading.Lock()
        self._inflight: _Refresh | None = None
        self._credential = store.load()
        if self._credential is not None and self.mirror is not None:
            self.mirror.publish(self._credential)

    @classmethod
    def from_config(cls, cfg: AppConfig, shared: SharedStore | None = None) -> "CredentialManager":
        if not cfg.client_id or not cfg.client_secret:
            raise PreconditionFailed("Spotify client id/secret are not configured")
        oauth = SpotifyOAuth(cfg.client_id, cfg.client_secret, cfg.redirect_uri, timeout_s=cfg.http_timeout_s)
        mirror = CredentialMirror(shared) if shared is not None else None
        return cls(oauth, TokenFileStore(cfg.token_path), mirror)

    @property
    def state(self) -> CredentialState:
        with self._lock:
            return self._state_locked()

    @property
    def logged_in(self) -> bool:
        return self.state is not CredentialState.ABSENT

    def _state_locked(self) -> CredentialState:
        cred = self._credential
        if cred is None:
            return CredentialState.ABSENT
        if cred.expires_within(self.refresh_margin_s, self._clock()):
            return CredentialState.EXPIRING
        return CredentialState.VALID

    def authorize_url(self, state: str) -> str:
        return self.oauth.authorize_url(state)

    def login(self, code: str) -> Credential:
        resp = self.oauth.exchange_code(code)
        if not resp.refresh_token:
            raise ParseFailure("token endpoint did not return a refresh token")
        cred = Credential(resp.access_token, resp.refresh_token, resp.expires_at(self._clock()))
        with self._lock:
            self._commit(cred)
        logger.info("Logged in, token valid for %.0fs", resp.expires_in)
        return cred

    def logout(self) -> None:
        with self._lock:
            self._credential = None
            self.store.clear()
            if self.mirror is not None:
                self.mirror.clear()
        logger.info("Logged out, credential cleared")

    def invalidate_access(self) -> None:
        """The access token was rejected; force a refresh on next use."""
        with self._lock:
            cred = self._credential
            if cred is not None:
                self._credential = Credential(cred.access_token, cred.refresh_token, 0.0)

    def access_token(self) -> str:
        return self.with_valid_token(lambda token: token)

    def with_valid_token(self, callback: Callable[[str], T]) -> T:
        with self._lock:
            state = self._state_locked()
            if state is CredentialState.ABSENT:
                raise CredentialInvalid("Not logged in")
            if state is CredentialState.VALID:
                token = self._credential.access_token  # type: ignore[union-attr]
                call = None
                leader = False
            else:
                call = self._inflight
                leader = call is None
                if call is None:
                    call = self._inflight = _Refresh()
                refresh_token = self._credential.refresh_token  # type: ignore[union-attr]

        if call is not None:
            if leader:
                self._run_refresh(call, refresh_token)
            else:
                call.done.wait()
            if call.error is not None:
                raise call.error
            if call.credential is None:
                raise NetworkFailure("Token refresh was interrupted")
            token = call.credential.access_token

        return callback(token)

    def _run_refresh(self, call: _Refresh, refresh_token: str) -> None:
        try:
            resp = self.oauth.refresh(refresh_token)
            cred = Credential(
                resp.access_token,
                resp.refresh_token or refresh_token,
                resp.expires_at(self._clock()),
            )
            with self._lock:
                self._commit(cred)
            call.credential = cred
            logger.info("Access token refreshed")
        except (CredentialInvalid, ParseFailure) as e:
            logger.warning("Refresh rejected, logging out: %s", e)
            with self._lock:
                self._credential = None
                self.store.clear()
                if self.mirror is not None:
                    self.mirror.clear()
            call.error = CredentialInvalid(f"Refresh failed: {e}")
        except Exception as e:
            # transport errors keep the credential; the next call retries
            call.error = e
        finally:
            with self._lock:
                self._inflight = None
            call.done.set()

    def _commit(self, cred: Credential) -> None:
        self._credential = cred
        self.store.save(cred)
        if self.mirror is not None:
            self.mirror.publish(cred)
