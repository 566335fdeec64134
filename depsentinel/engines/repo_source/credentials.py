"""Where hosting-provider tokens come from."""

from __future__ import annotations

import os
from typing import Protocol


class CredentialProvider(Protocol):
    def token_for(self, provider: str) -> str | None: ...


class EnvCredentialProvider:
    """Reads tokens from the environment (``GITHUB_TOKEN`` for github)."""

    _ENV_KEYS = {"github": "GITHUB_TOKEN"}

    def token_for(self, provider: str) -> str | None:
        key = self._ENV_KEYS.get(provider)
        if key is None:
            return None
        return os.environ.get(key) or None


class StaticCredentialProvider:
    """Hands out one fixed token for every provider."""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    def token_for(self, provider: str) -> str | None:
        return self._token
