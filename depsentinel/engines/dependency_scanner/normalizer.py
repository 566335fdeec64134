"""DependencyNormalizer — turn parsed manifests into services and components."""

from __future__ import annotations

import asyncio
import dataclasses
import re
from posixpath import basename, dirname

import structlog

from depsentinel.engines.dependency_scanner.lookup import (
    RUNTIME,
    LookupAnswer,
    NullLookup,
    VulnerabilityLookup,
)
from depsentinel.engines.dependency_scanner.models import (
    Ecosystem,
    ManifestContent,
    ServiceComponent,
    ServiceSummary,
)
from depsentinel.engines.dependency_scanner.registry import parse_manifest

log = structlog.get_logger("depsentinel.engine")

_ID_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_-]")

_LANGUAGE_BY_ECOSYSTEM: tuple[tuple[Ecosystem, str], ...] = (
    (Ecosystem.NPM, "javascript"),
    (Ecosystem.MAVEN, "java"),
    (Ecosystem.GRADLE, "java"),
    (Ecosystem.ANT, "java"),
    (Ecosystem.PERL, "perl"),
    (Ecosystem.DOCKER, "docker"),
)

ComponentKey = tuple[str, Ecosystem]


def infer_language(ecosystems: set[Ecosystem]) -> str:
    for ecosystem, language in _LANGUAGE_BY_ECOSYSTEM:
        if ecosystem in ecosystems:
            return language
    return "unknown"


class DependencyNormalizer:
    """Group manifests into services and merge their dependencies.

    Within one service, components are de-duplicated by ``(name,
    ecosystem)``; when a name appears twice the later declaration wins.
    Manifests arrive in tree-listing order, so the result is deterministic.
    """

    def __init__(self, lookup: VulnerabilityLookup | None = None) -> None:
        self._lookup = lookup or NullLookup()

    async def normalize(
        self, repo_name: str, manifests: list[ManifestContent]
    ) -> list[ServiceSummary]:
        services = self.build_services(repo_name, manifests)
        await self.annotate(services)
        return services

    # ── grouping / de-duplication (synchronous) ─────────────────────────

    def build_services(
        self, repo_name: str, manifests: list[ManifestContent]
    ) -> list[ServiceSummary]:
        services: dict[str, ServiceSummary] = {}
        components: dict[str, dict[ComponentKey, ServiceComponent]] = {}
        ecosystems: dict[str, set[Ecosystem]] = {}

        for manifest in manifests:
            dir_path = dirname(manifest.path) or "."
            service = services.get(dir_path)
            if service is None:
                service = ServiceSummary(
                    id=_ID_UNSAFE_RE.sub("-", f"{repo_name}-{dir_path}"),
                    name=repo_name if dir_path == "." else basename(dir_path),
                    path=dir_path,
                    language="unknown",
                )
                services[dir_path] = service
                components[dir_path] = {}
                ecosystems[dir_path] = set()
            service.manifest_files.append(basename(manifest.path))
            ecosystems[dir_path].add(manifest.ecosystem)

            if manifest.error is not None or manifest.content is None:
                service.warnings.append(
                    f"{manifest.path}: fetch failed: {manifest.error or 'no content'}"
                )
                continue

            result = parse_manifest(manifest.ecosystem, manifest.content)
            if result.error:
                log.info("normalizer.parse_error", path=manifest.path, error=result.error)
                service.warnings.append(f"{manifest.path}: {result.error}")

            bucket = components[dir_path]
            for dep in result.components:
                key = (dep.name, manifest.ecosystem)
                if key in bucket:
                    log.debug("normalizer.component_overwritten", name=dep.name, path=manifest.path)
                    # Re-insert so ordering reflects the winning declaration
                    del bucket[key]
                bucket[key] = ServiceComponent(
                    name=dep.name,
                    version=dep.version,
                    type=dep.type,
                    ecosystem=manifest.ecosystem,
                    scope=dep.scope,
                    flagged=dep.flag_reason is not None,
                    flag_reason=dep.flag_reason,
                )

            if result.runtime:
                service.runtime = result.runtime
            if result.runtime_version:
                service.runtime_version = result.runtime_version
                service.eol = result.runtime_eol
            if result.base_image:
                service.base_image = result.base_image

        for dir_path, service in services.items():
            service.components = list(components[dir_path].values())
            service.language = infer_language(ecosystems[dir_path])
        return list(services.values())

    # ── external lookup ─────────────────────────────────────────────────

    async def annotate(self, services: list[ServiceSummary]) -> None:
        """Apply EOL / vulnerability answers in place."""
        keys: set[tuple[str, str, str]] = set()
        for service in services:
            for comp in service.components:
                keys.add((comp.name, comp.version, comp.ecosystem.value))
            if service.runtime and service.runtime_version:
                keys.add((service.runtime, service.runtime_version, RUNTIME))
        if not keys:
            return

        ordered = sorted(keys)
        answers = await asyncio.gather(*(self._ask(*key) for key in ordered))
        by_key = dict(zip(ordered, answers))

        for service in services:
            service.components = [
                _apply(comp, by_key.get((comp.name, comp.version, comp.ecosystem.value)))
                for comp in service.components
            ]
            if service.runtime and service.runtime_version:
                runtime_answer = by_key.get((service.runtime, service.runtime_version, RUNTIME))
                if runtime_answer is not None and runtime_answer.eol:
                    service.eol = True

    async def _ask(self, name: str, version: str, ecosystem: str) -> LookupAnswer | None:
        try:
            return await self._lookup.lookup(name, version, ecosystem)
        except Exception as exc:  # noqa: BLE001
            log.warning("normalizer.lookup_failed", name=name, ecosystem=ecosystem, error=str(exc))
            return None


def _apply(comp: ServiceComponent, answer: LookupAnswer | None) -> ServiceComponent:
    if answer is None:
        return comp
    reason = comp.flag_reason
    if reason is None and answer.eol:
        reason = "End of Life"
    if reason is None and answer.vulnerability_count > 0:
        reason = f"Security vulnerabilities ({answer.vulnerability_count})"
    return dataclasses.replace(
        comp,
        latest_version=answer.latest_version,
        eol=answer.eol,
        vulnerability_count=answer.vulnerability_count,
        flagged=reason is not None,
        flag_reason=reason,
    )
