"""Dependency injection — the process-wide scan service singleton."""

from __future__ import annotations

from depsentinel.core.config import ScanSettings
from depsentinel.engines.dependency_scanner import DependencyNormalizer
from depsentinel.engines.dependency_scanner.lookup import (
    EndOfLifeLookup,
    VulnerabilityLookup,
    create_lookup,
)
from depsentinel.engines.repo_source import SourceFactory
from depsentinel.engines.scan_orchestrator.coordinator import RunCoordinator
from depsentinel.services.scan_service import ScanService

# ---------------------------------------------------------------------------
# Singletons (initialised by app lifespan or the CLI)
# ---------------------------------------------------------------------------
_settings: ScanSettings | None = None
_scan_service: ScanService | None = None
_sources: SourceFactory | None = None
_lookup: VulnerabilityLookup | None = None


def init_scan_service(
    settings: ScanSettings | None = None,
    *,
    sources: SourceFactory | None = None,
    lookup: VulnerabilityLookup | None = None,
) -> ScanService:
    """Wire coordinator, sources and lookup. Called once at startup."""
    global _settings, _scan_service, _sources, _lookup  # noqa: PLW0603
    _settings = settings or ScanSettings.from_env()
    _sources = sources or SourceFactory(fetch_timeout=_settings.fetch_timeout)
    _lookup = lookup or create_lookup(_settings.eol_lookup)
    coordinator = RunCoordinator(
        sources=_sources,
        normalizer=DependencyNormalizer(_lookup),
        settings=_settings,
    )
    _scan_service = ScanService(coordinator)
    return _scan_service


def set_scan_service(service: ScanService) -> None:
    """Override the scan service (for testing)."""
    global _scan_service  # noqa: PLW0603
    _scan_service = service


async def dispose_scan_service() -> None:
    """Cancel running workers and close HTTP clients."""
    global _scan_service, _sources, _lookup  # noqa: PLW0603
    if _scan_service is not None:
        await _scan_service.coordinator.shutdown()
        _scan_service = None
    if _sources is not None:
        await _sources.close()
        _sources = None
    if isinstance(_lookup, EndOfLifeLookup):
        await _lookup.close()
    _lookup = None


# ---------------------------------------------------------------------------
# Getters (for Depends())
# ---------------------------------------------------------------------------


def get_settings() -> ScanSettings:
    return _settings or ScanSettings.from_env()


def get_scan_service() -> ScanService:
    if _scan_service is None:
        raise RuntimeError("call init_scan_service() before handling requests")
    return _scan_service
