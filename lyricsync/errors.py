from __future__ import annotations

from typing import Sequence


class LyricSyncError(RuntimeError):
    pass


class NetworkFailure(LyricSyncError):
    """Timeout, DNS or HTTP error talking to a remote service."""


class ParseFailure(LyricSyncError):
    """A response or document could not be decoded into the expected shape."""


class NotFound(LyricSyncError):
    pass


class AmbiguousResult(LyricSyncError):
    def __init__(self, message: str, candidates: Sequence[object] = ()):
        super().__init__(message)
        self.candidates = tuple(candidates)


class CredentialInvalid(LyricSyncError):
    pass


class PreconditionFailed(LyricSyncError):
    pass
