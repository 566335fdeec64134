"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_FETCH_CONCURRENCY = 6
DEFAULT_FETCH_TIMEOUT = 30.0
DEFAULT_MAX_MANIFEST_BYTES = 10 * 1024 * 1024
DEFAULT_RETENTION_DAYS = 7
DEFAULT_EVICT_INTERVAL = 24 * 60 * 60


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


@dataclass(frozen=True)
class ScanSettings:
    """Knobs for the scan engine.

    ``max_parallel_repos`` of 0 means every repository in a run gets its own
    worker immediately.
    """

    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_parallel_repos: int = 0
    max_manifest_bytes: int = DEFAULT_MAX_MANIFEST_BYTES
    retention_days: int = DEFAULT_RETENTION_DAYS
    evict_interval: float = DEFAULT_EVICT_INTERVAL
    eol_lookup: str = "none"

    @classmethod
    def from_env(cls) -> ScanSettings:
        return cls(
            fetch_concurrency=max(_env_int("DEPSENTINEL_FETCH_CONCURRENCY", DEFAULT_FETCH_CONCURRENCY), 1),
            fetch_timeout=_env_float("DEPSENTINEL_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT),
            max_parallel_repos=max(_env_int("DEPSENTINEL_MAX_PARALLEL_REPOS", 0), 0),
            max_manifest_bytes=_env_int("DEPSENTINEL_MAX_MANIFEST_BYTES", DEFAULT_MAX_MANIFEST_BYTES),
            retention_days=_env_int("DEPSENTINEL_RUN_RETENTION_DAYS", DEFAULT_RETENTION_DAYS),
            evict_interval=_env_float("DEPSENTINEL_EVICT_INTERVAL", DEFAULT_EVICT_INTERVAL),
            eol_lookup=os.environ.get("DEPSENTINEL_EOL_LOOKUP", "none").strip().lower(),
        )
