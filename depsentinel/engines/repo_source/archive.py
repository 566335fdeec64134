"""RepositorySource over a local ``.zip`` snapshot of a repository."""

from __future__ import annotations

import asyncio
import hashlib
import os
import zipfile
from collections.abc import Sequence

from depsentinel.core.config import DEFAULT_FETCH_CONCURRENCY, DEFAULT_FETCH_TIMEOUT
from depsentinel.engines.repo_source.base import (
    FetchedContent,
    ProgressCallback,
    SourceNotFoundError,
    TransientFetchError,
    TreeEntry,
    fetch_in_chunks,
)
from depsentinel.engines.scan_orchestrator.models import RepoRef


def _archive_path(repo: RepoRef) -> str:
    if not repo.remote_url:
        raise SourceNotFoundError(f"no archive path for repository {repo.name!r}")
    return repo.remote_url


def _common_prefix(names: list[str]) -> str:
    """``"project-main/"`` if every member sits under it, else ``""``."""
    tops = {name.split("/", 1)[0] for name in names}
    if len(tops) != 1:
        return ""
    top = tops.pop()
    if all(name.startswith(top + "/") for name in names):
        return top + "/"
    return ""


class ArchiveSource:
    """Zip files are read in a worker thread; the ref is the archive's SHA-256."""

    def __init__(self, *, fetch_timeout: float = DEFAULT_FETCH_TIMEOUT) -> None:
        self._fetch_timeout = fetch_timeout

    async def resolve_ref(self, repo: RepoRef, ref_name: str) -> str:
        return await asyncio.to_thread(self._hash_archive, _archive_path(repo))

    async def list_tree(self, repo: RepoRef, ref: str) -> list[TreeEntry]:
        return await asyncio.to_thread(self._list_members, _archive_path(repo))

    async def fetch_contents(
        self,
        repo: RepoRef,
        entries: Sequence[TreeEntry],
        concurrency_limit: int = DEFAULT_FETCH_CONCURRENCY,
        on_progress: ProgressCallback | None = None,
    ) -> list[FetchedContent]:
        path = _archive_path(repo)

        async def _read(entry: TreeEntry) -> str:
            return await asyncio.to_thread(self._read_member, path, entry.object_id)

        return await fetch_in_chunks(
            entries,
            _read,
            concurrency_limit=concurrency_limit,
            timeout=self._fetch_timeout,
            on_progress=on_progress,
        )

    # ── blocking helpers ───────────────────────────────────────────────────

    @staticmethod
    def _hash_archive(path: str) -> str:
        if not os.path.isfile(path):
            raise SourceNotFoundError(f"archive not found: {path}")
        digest = hashlib.sha256()
        with open(path, "rb") as fh:
            for block in iter(lambda: fh.read(1 << 16), b""):
                digest.update(block)
        return digest.hexdigest()

    @staticmethod
    def _list_members(path: str) -> list[TreeEntry]:
        try:
            with zipfile.ZipFile(path) as zf:
                infos = [info for info in zf.infolist() if not info.is_dir()]
        except FileNotFoundError as exc:
            raise SourceNotFoundError(f"archive not found: {path}") from exc
        except zipfile.BadZipFile as exc:
            raise TransientFetchError(f"not a zip archive: {path}") from exc

        prefix = _common_prefix([info.filename for info in infos])
        return [
            TreeEntry(
                path=info.filename[len(prefix) :],
                object_id=info.filename,
                size=info.file_size,
            )
            for info in infos
        ]

    @staticmethod
    def _read_member(path: str, member: str) -> str:
        try:
            with zipfile.ZipFile(path) as zf:
                return zf.read(member).decode("utf-8-sig", errors="replace")
        except KeyError as exc:
            raise SourceNotFoundError(f"{member} not in archive") from exc
        except (OSError, zipfile.BadZipFile) as exc:
            raise TransientFetchError(f"cannot read {member}: {exc}") from exc
