"""Scan request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from depsentinel.engines.dependency_scanner.models import ComponentType, Ecosystem
from depsentinel.engines.scan_orchestrator.models import (
    ProgressStatus,
    RepoRef,
    RunStatus,
    ScanDepth,
)


class RepoRefIn(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    provider: Literal["github", "gitlab", "bitbucket", "azure", "archive"]
    default_branch: str = "main"
    remote_url: str | None = None

    def to_ref(self) -> RepoRef:
        return RepoRef(**self.model_dump())


class ScanCreate(BaseModel):
    repos: list[RepoRefIn] = Field(min_length=1)
    depth: ScanDepth = ScanDepth.FULL


class ScanCreated(BaseModel):
    run_id: str


class RepoRefOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    provider: str
    default_branch: str
    remote_url: str | None


class ProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    repo_id: str
    repo_name: str
    status: ProgressStatus
    percent: int
    message: str
    error: str | None
    warnings: list[str]


class RunListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    depth: ScanDepth
    status: RunStatus
    started_at: datetime
    ended_at: datetime | None
    total_repos: int
    completed_repos: int


class RunDetail(RunListItem):
    repos: list[RepoRefOut]
    progress: dict[str, ProgressOut]


class ComponentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    version: str
    type: ComponentType
    ecosystem: Ecosystem
    scope: str | None
    latest_version: str | None
    eol: bool
    vulnerability_count: int
    flagged: bool
    flag_reason: str | None


class ServiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
    language: str
    manifest_files: list[str]
    components: list[ComponentOut]
    runtime: str | None
    runtime_version: str | None
    eol: bool
    base_image: str | None
    warnings: list[str]


class TechnologyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    category: str
    version: str | None
    service_count: int
    services: list[str]


class RepoResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    repo_id: str
    repo_name: str
    ref: str
    service_ids: list[str]
    warnings: list[str]


class ScanResultsOut(BaseModel):
    run_id: str
    partial: bool
    total_services: int
    total_components: int
    flagged_components: int
    eol_components: int
    repos: list[RepoResultOut]
    services: list[ServiceOut]
    technologies: list[TechnologyOut]
