"""RepoCache — last successful scan per repository, for incremental runs."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from depsentinel.engines.scan_orchestrator.models import RepoScanResult


def fingerprint(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class RepoCacheEntry:
    ref: str
    manifest_paths: frozenset[str]
    file_hashes: dict[str, str] = field(default_factory=dict)
    result: RepoScanResult | None = None


class RepoCache:
    """Keyed by repository id; lives as long as the process."""

    def __init__(self) -> None:
        self._entries: dict[str, RepoCacheEntry] = {}

    def get(self, repo_id: str) -> RepoCacheEntry | None:
        return self._entries.get(repo_id)

    def put(self, repo_id: str, entry: RepoCacheEntry) -> None:
        self._entries[repo_id] = entry

    def __len__(self) -> int:
        return len(self._entries)
