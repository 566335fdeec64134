"""Scans router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from depsentinel.api.deps import get_scan_service
from depsentinel.api.schemas.scan import (
    RepoResultOut,
    RunDetail,
    RunListItem,
    ScanCreate,
    ScanCreated,
    ScanResultsOut,
    ServiceOut,
    TechnologyOut,
)
from depsentinel.services.scan_service import ScanService

router = APIRouter()


@router.post("", response_model=ScanCreated, status_code=202)
async def start_scan(
    body: ScanCreate,
    svc: ScanService = Depends(get_scan_service),
) -> ScanCreated:
    run_id = await svc.start_scan([repo.to_ref() for repo in body.repos], body.depth)
    return ScanCreated(run_id=run_id)


@router.get("", response_model=list[RunListItem])
async def list_scans(
    svc: ScanService = Depends(get_scan_service),
) -> list[RunListItem]:
    runs = await svc.list_runs()
    return [RunListItem.model_validate(run) for run in runs]


@router.get("/{run_id}", response_model=RunDetail)
async def get_scan(
    run_id: str,
    svc: ScanService = Depends(get_scan_service),
) -> RunDetail:
    run = await svc.get_run(run_id)
    return RunDetail.model_validate(run)


@router.get("/{run_id}/results", response_model=ScanResultsOut)
async def get_results(
    run_id: str,
    partial: bool = Query(False),
    svc: ScanService = Depends(get_scan_service),
) -> ScanResultsOut:
    results = await svc.get_results(run_id, include_partial=partial)
    return ScanResultsOut(
        run_id=results.run_id,
        partial=results.partial,
        total_services=results.total_services,
        total_components=results.total_components,
        flagged_components=results.flagged_components,
        eol_components=results.eol_components,
        repos=[
            RepoResultOut(
                repo_id=repo.repo_id,
                repo_name=repo.repo_name,
                ref=repo.ref,
                service_ids=[service.id for service in repo.services],
                warnings=repo.warnings,
            )
            for repo in results.repos.values()
        ],
        services=[ServiceOut.model_validate(service) for service in results.services],
        technologies=[TechnologyOut.model_validate(tech) for tech in results.technologies],
    )
