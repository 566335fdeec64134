"""CLI entry point: depsentinel.

Subcommands:
    depsentinel scan https://github.com/org/repo app.zip   # Scan and print inventory
    depsentinel serve --port 8000                          # Run the HTTP API
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys

import click

from depsentinel.core.config import ScanSettings
from depsentinel.core.logging import setup_logging
from depsentinel.engines.dependency_scanner import DependencyNormalizer
from depsentinel.engines.dependency_scanner.lookup import EndOfLifeLookup, create_lookup
from depsentinel.engines.repo_source import (
    EnvCredentialProvider,
    SourceFactory,
    StaticCredentialProvider,
)
from depsentinel.engines.scan_orchestrator.coordinator import RunCoordinator
from depsentinel.engines.scan_orchestrator.models import (
    ProgressStatus,
    RunStatus,
    ScanDepth,
    ScanResults,
    ScanRun,
)
from depsentinel.services import ServiceError
from depsentinel.services.scan_service import ScanService, repo_from_target


async def _run_scan(
    targets: tuple[str, ...],
    *,
    branch: str,
    depth: ScanDepth,
    token: str | None,
    settings: ScanSettings,
) -> tuple[ScanRun, ScanResults]:
    credentials = StaticCredentialProvider(token) if token else EnvCredentialProvider()
    sources = SourceFactory(credentials, fetch_timeout=settings.fetch_timeout)
    lookup = create_lookup(settings.eol_lookup)
    coordinator = RunCoordinator(
        sources=sources,
        normalizer=DependencyNormalizer(lookup),
        settings=settings,
    )
    service = ScanService(coordinator)
    try:
        repos = [repo_from_target(target, branch=branch) for target in targets]
        return await service.scan_and_wait(repos, depth)
    finally:
        await coordinator.shutdown()
        await sources.close()
        if isinstance(lookup, EndOfLifeLookup):
            await lookup.close()


def _print_report(run: ScanRun, results: ScanResults) -> None:
    icons = {ProgressStatus.COMPLETED: "+", ProgressStatus.FAILED: "!"}
    click.echo(f"Scan {run.id}: {run.status.value} ({run.completed_repos}/{run.total_repos} repos)")
    for progress in run.progress.values():
        icon = icons.get(progress.status, "?")
        click.echo(f"  [{icon}] {progress.repo_name} - {progress.message}")
        for warning in progress.warnings:
            click.echo(f"      warning: {warning}")

    click.echo(
        f"\nServices: {results.total_services}  Components: {results.total_components}"
        f"  Flagged: {results.flagged_components}  EOL: {results.eol_components}"
    )
    for service in results.services:
        runtime = f" {service.runtime} {service.runtime_version or ''}".rstrip() if service.runtime else ""
        eol = " [EOL]" if service.eol else ""
        click.echo(f"\n  {service.name} ({service.path}) {service.language}{runtime}{eol}")
        for comp in service.components:
            flag = f"  ! {comp.flag_reason}" if comp.flagged else ""
            click.echo(f"    {comp.ecosystem.value:<12} {comp.name} {comp.version}{flag}")

    if results.technologies:
        click.echo("\nTechnologies:")
        for tech in results.technologies:
            click.echo(f"  {tech.name} [{tech.category}] used by {tech.service_count}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """DepSentinel: dependency inventory across repositories."""
    setup_logging("DEBUG" if verbose else None)


@main.command("scan")
@click.argument("targets", nargs=-1, required=True)
@click.option("--branch", default="main", show_default=True, help="Branch, tag or SHA to scan")
@click.option(
    "--depth",
    type=click.Choice([d.value for d in ScanDepth]),
    default=ScanDepth.FULL.value,
    show_default=True,
)
@click.option("--token", default=None, help="GitHub token (defaults to $GITHUB_TOKEN)")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
def scan(targets: tuple[str, ...], branch: str, depth: str, token: str | None, as_json: bool) -> None:
    """Scan GitHub repositories (URL or owner/repo) and local .zip archives."""
    settings = ScanSettings.from_env()
    try:
        run, results = asyncio.run(
            _run_scan(targets, branch=branch, depth=ScanDepth(depth), token=token, settings=settings)
        )
    except ServiceError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if as_json:
        payload = {
            "run": dataclasses.asdict(run),
            "results": dataclasses.asdict(results),
        }
        click.echo(json.dumps(payload, indent=2, default=str))
    else:
        _print_report(run, results)

    if run.status == RunStatus.FAILED:
        sys.exit(1)


@main.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("depsentinel.api:create_app", factory=True, host=host, port=port)
