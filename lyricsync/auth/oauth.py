from __future__ import annotations

import logging
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any

import requests

from lyricsync.errors import CredentialInvalid, NetworkFailure, ParseFailure

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_SCOPE = "user-read-playback-state user-read-currently-playing"


@dataclass(frozen=True, slots=True)
class TokenResponse:
    access_token: str
    refresh_token: str | None  # Spotify does not always rotate it
    expires_in: float

    @classmethod
    def from_json(cls, data: Any) -> "TokenResponse":
        if not isinstance(data, dict):
            raise ParseFailure("token endpoint: expected a JSON object")
        access = data.get("access_token")
        expires_in = data.get("expires_in")
        if not isinstance(access, str) or not access:
            raise ParseFailure("token endpoint: missing access_token")
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool):
            raise ParseFailure("token endpoint: missing expires_in")
        refresh = data.get("refresh_token")
        return cls(
            access_token=access,
            refresh_token=refresh if isinstance(refresh, str) and refresh else None,
            expires_in=float(expires_in),
        )

    def expires_at(self, now: float | None = None) -> float:
        return (time.time() if now is None else now) + self.expires_in


class SpotifyOAuth:
    """Authorization-code flow against the Spotify accounts service."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        scope: str = DEFAULT_SCOPE,
        timeout_s: float = 15.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.timeout_s = timeout_s

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": state,
            "show_dialog": "true",
        }
        return f"{AUTH_URL}?{urllib.parse.urlencode(params)}"

    @staticmethod
    def code_from_redirect(value: str) -> str:
        """Accept either the bare code or the full redirect URL."""
        value = value.strip()
        if "code=" not in value:
            return value
        query = urllib.parse.urlparse(value).query or value.split("?", 1)[-1]
        codes = urllib.parse.parse_qs(query).get("code")
        if not codes:
            raise CredentialInvalid("Redirect URL does not contain a code")
        return codes[0]

    def exchange_code(self, code: str) -> TokenResponse:
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    def refresh(self, refresh_token: str) -> TokenResponse:
        return self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def _token_request(self, data: dict[str, str]) -> TokenResponse:
        grant = data["grant_type"]
        try:
            r = requests.post(
                TOKEN_URL,
                data=data,
                auth=(self.client_id, self.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise NetworkFailure(f"token endpoint unreachable: {e}") from e

        if r.status_code in (400, 401):
            # invalid_grant / invalid_client: the stored grant is dead
            reason = _error_reason(r)
            logger.warning("Token request (%s) rejected: %s", grant, reason)
            raise CredentialInvalid(reason)
        if r.status_code >= 400:
            raise NetworkFailure(f"token endpoint returned HTTP {r.status_code}")
        try:
            return TokenResponse.from_json(r.json())
        except ValueError as e:
            raise ParseFailure("token endpoint: invalid JSON") from e


def _error_reason(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return f"HTTP {r.status_code}"
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or f"HTTP {r.status_code}")
    return f"HTTP {r.status_code}"
