"""Repository sources — provider-specific tree listing and content fetching."""

from __future__ import annotations

import httpx

from depsentinel.core.config import DEFAULT_FETCH_TIMEOUT
from depsentinel.engines.repo_source.archive import ArchiveSource
from depsentinel.engines.repo_source.base import (
    AuthError,
    FetchedContent,
    RateLimitError,
    RepositorySource,
    RepositorySourceError,
    SourceNotFoundError,
    TransientFetchError,
    TreeEntry,
    UnsupportedProviderError,
    fetch_in_chunks,
)
from depsentinel.engines.repo_source.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    StaticCredentialProvider,
)
from depsentinel.engines.repo_source.github import GitHubSource
from depsentinel.engines.repo_source.github_client import GitHubClient
from depsentinel.engines.scan_orchestrator.models import RepoRef


class SourceFactory:
    """Maps a repository's provider tag to a :class:`RepositorySource`.

    Sources are created lazily and shared by every worker of the process.
    """

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        *,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        github_api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials or EnvCredentialProvider()
        self._fetch_timeout = fetch_timeout
        self._github_api_url = github_api_url
        self._transport = transport
        self._github: GitHubSource | None = None
        self._archive: ArchiveSource | None = None

    def for_repo(self, repo: RepoRef) -> RepositorySource:
        if repo.provider == "github":
            if self._github is None:
                client = GitHubClient(
                    self._credentials.token_for("github"),
                    base_url=self._github_api_url,
                    transport=self._transport,
                )
                self._github = GitHubSource(client, fetch_timeout=self._fetch_timeout)
            return self._github
        if repo.provider == "archive":
            if self._archive is None:
                self._archive = ArchiveSource(fetch_timeout=self._fetch_timeout)
            return self._archive
        raise UnsupportedProviderError(f"provider {repo.provider!r} is not supported")

    async def close(self) -> None:
        if self._github is not None:
            await self._github.close()
            self._github = None


__all__ = [
    "ArchiveSource",
    "AuthError",
    "CredentialProvider",
    "EnvCredentialProvider",
    "FetchedContent",
    "GitHubClient",
    "GitHubSource",
    "RateLimitError",
    "RepositorySource",
    "RepositorySourceError",
    "SourceFactory",
    "SourceNotFoundError",
    "StaticCredentialProvider",
    "TransientFetchError",
    "TreeEntry",
    "UnsupportedProviderError",
    "fetch_in_chunks",
]
