"""Data models for scan runs, per-repository progress and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from depsentinel.engines.dependency_scanner.models import ServiceSummary, TechnologySummary


class ScanDepth(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class ProgressStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)


PROVIDERS = ("github", "gitlab", "bitbucket", "azure", "archive")


@dataclass(frozen=True)
class RepoRef:
    """Identity of a repository to scan; supplied by the caller, never mutated."""

    id: str
    name: str
    provider: str
    default_branch: str = "main"
    remote_url: str | None = None


@dataclass
class ScanProgress:
    repo_id: str
    repo_name: str
    status: ProgressStatus = ProgressStatus.PENDING
    percent: int = 0
    message: str = "Queued for scanning"
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class ScanRun:
    id: str
    repos: list[RepoRef]
    depth: ScanDepth
    started_at: datetime
    progress: dict[str, ScanProgress]
    status: RunStatus = RunStatus.PENDING
    ended_at: datetime | None = None
    total_repos: int = 0
    completed_repos: int = 0


@dataclass
class RepoScanResult:
    repo_id: str
    repo_name: str
    ref: str
    services: list[ServiceSummary] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ScanResults:
    run_id: str
    repos: dict[str, RepoScanResult]
    services: list[ServiceSummary]
    total_services: int
    total_components: int
    flagged_components: int
    eol_components: int
    technologies: list[TechnologySummary] = field(default_factory=list)
    partial: bool = False
