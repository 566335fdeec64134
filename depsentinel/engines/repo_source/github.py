"""RepositorySource backed by the GitHub REST API."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence

import structlog

from depsentinel.core.config import DEFAULT_FETCH_CONCURRENCY, DEFAULT_FETCH_TIMEOUT
from depsentinel.engines.repo_source.base import (
    FetchedContent,
    ProgressCallback,
    SourceNotFoundError,
    TransientFetchError,
    TreeEntry,
    fetch_in_chunks,
)
from depsentinel.engines.repo_source.github_client import GitHubClient
from depsentinel.engines.scan_orchestrator.models import RepoRef

log = structlog.get_logger("depsentinel.engine")


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub URL.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git
      - owner/repo

    Raises ValueError if the URL cannot be parsed.
    """
    url = repo_url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]

    if url.startswith("git@"):
        colon_idx = url.find(":")
        if colon_idx == -1:
            raise ValueError(f"cannot parse GitHub repo URL: {repo_url!r}")
        url = url[colon_idx + 1 :]

    parts = [p for p in url.split("/") if p]
    if len(parts) < 2 or parts[-2].endswith(":"):
        raise ValueError(f"cannot parse GitHub repo URL: {repo_url!r}")
    return parts[-2], parts[-1]


def _owner_repo(repo: RepoRef) -> str:
    # Without a URL the repo name is expected to be "owner/name"
    owner, name = parse_repo_url(repo.remote_url or repo.name)
    return f"{owner}/{name}"


class GitHubSource:
    """Reads trees and blobs through :class:`GitHubClient`."""

    def __init__(self, client: GitHubClient, *, fetch_timeout: float = DEFAULT_FETCH_TIMEOUT) -> None:
        self._client = client
        self._fetch_timeout = fetch_timeout

    async def resolve_ref(self, repo: RepoRef, ref_name: str) -> str:
        """Branch name, tag or SHA -> commit SHA.

        Branches are looked up first; ``commits/{ref}`` handles tags and
        SHAs.
        """
        slug = _owner_repo(repo)
        try:
            data = await self._client.get(f"/repos/{slug}/branches/{ref_name}")
            return data["commit"]["sha"]
        except SourceNotFoundError:
            pass
        try:
            data = await self._client.get(f"/repos/{slug}/commits/{ref_name}")
        except SourceNotFoundError as exc:
            raise SourceNotFoundError(f"ref {ref_name!r} not found in {slug}") from exc
        return data["sha"]

    async def list_tree(self, repo: RepoRef, ref: str) -> list[TreeEntry]:
        slug = _owner_repo(repo)
        data = await self._client.get(f"/repos/{slug}/git/trees/{ref}", params={"recursive": "1"})
        if data.get("truncated"):
            log.warning("github.tree_truncated", repo=slug, ref=ref)
        return [
            TreeEntry(
                path=item["path"],
                object_id=item["sha"],
                size=item.get("size"),
                kind=item.get("type", "blob"),
            )
            for item in data.get("tree", [])
        ]

    async def fetch_contents(
        self,
        repo: RepoRef,
        entries: Sequence[TreeEntry],
        concurrency_limit: int = DEFAULT_FETCH_CONCURRENCY,
        on_progress: ProgressCallback | None = None,
    ) -> list[FetchedContent]:
        slug = _owner_repo(repo)

        async def _fetch_blob(entry: TreeEntry) -> str:
            data = await self._client.get(f"/repos/{slug}/git/blobs/{entry.object_id}")
            return _decode_blob(entry.path, data)

        return await fetch_in_chunks(
            entries,
            _fetch_blob,
            concurrency_limit=concurrency_limit,
            timeout=self._fetch_timeout,
            on_progress=on_progress,
        )

    async def close(self) -> None:
        await self._client.close()


def _decode_blob(path: str, data: dict) -> str:
    content = data.get("content", "")
    if data.get("encoding", "base64") != "base64":
        return content
    try:
        raw = base64.b64decode(content)
    except (binascii.Error, ValueError) as exc:
        raise TransientFetchError(f"cannot decode blob for {path}") from exc
    return raw.decode("utf-8-sig", errors="replace")
