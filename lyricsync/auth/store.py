from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from lyricsync.shared import SharedStore

logger = logging.getLogger(__name__)

MIRROR_KEYS = ("spotify_access_token", "spotify_refresh_token", "spotify_token_expires_at")


@dataclass(frozen=True, slots=True)
class Credential:
    access_token: str
    refresh_token: str
    expires_at: float  # epoch seconds

    def expires_within(self, margin_s: float, now: float) -> bool:
        return self.expires_at - now < margin_s

    @classmethod
    def from_json(cls, data: Any) -> "Credential | None":
        if not isinstance(data, dict):
            return None
        access, refresh, expires = data.get("access_token"), data.get("refresh_token"), data.get("expires_at")
        if not (isinstance(access, str) and access and isinstance(refresh, str) and refresh):
            return None
        if not isinstance(expires, (int, float)):
            return None
        return cls(access_token=access, refresh_token=refresh, expires_at=float(expires))

    def __repr__(self) -> str:
        # never leak tokens into logs
        return f"Credential(expires_at={self.expires_at:.0f})"


class TokenFileStore:
    """
    The source of truth for the credential: a JSON file readable by the
    owner only (0600).
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Credential | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Credential file %s unreadable: %s", self.path, e)
            return None
        cred = Credential.from_json(data)
        if cred is None:
            logger.warning("Credential file %s is incomplete, ignoring it", self.path)
        return cred

    def save(self, cred: Credential) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(asdict(cred), fh)
        try:
            tmp.chmod(0o600)
        except OSError:
            # not supported everywhere (e.g. some Windows filesystems)
            pass
        os.replace(tmp, self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class CredentialMirror:
    """
    Write-through copy of the credential in the shared store, for pollers in
    other processes. Readers must treat it as a cache: the file store wins.
    """

    def __init__(self, store: SharedStore):
        self.store = store

    def publish(self, cred: Credential) -> None:
        self.store.update(
            {
                "spotify_access_token": cred.access_token,
                "spotify_refresh_token": cred.refresh_token,
                "spotify_token_expires_at": cred.expires_at,
            }
        )

    def clear(self) -> None:
        self.store.delete(*MIRROR_KEYS)


def read_mirrored_credential(store: SharedStore) -> Credential | None:
    return Credential.from_json(
        {
            "access_token": store.get("spotify_access_token"),
            "refresh_token": store.get("spotify_refresh_token"),
            "expires_at": store.get("spotify_token_expires_at"),
        }
    )
