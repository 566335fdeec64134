"""Tests for the dependency normalizer, technology summary and EOL lookup."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest

from depsentinel.engines.dependency_scanner.lookup import (
    RUNTIME,
    EndOfLifeLookup,
    LookupAnswer,
    NullLookup,
    create_lookup,
)
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ManifestContent,
)
from depsentinel.engines.dependency_scanner.normalizer import (
    DependencyNormalizer,
    infer_language,
)
from depsentinel.engines.dependency_scanner.technologies import (
    categorize,
    summarize_technologies,
)


def _npm(path: str, deps: dict, **extra) -> ManifestContent:
    body = {"dependencies": deps, **extra}
    return ManifestContent(path=path, ecosystem=Ecosystem.NPM, content=json.dumps(body))


# ── Service grouping ─────────────────────────────────────────────────────


class TestBuildServices:
    def test_single_package_json(self):
        services = DependencyNormalizer().build_services(
            "acme/web", [_npm("package.json", {"left-pad": "^1.0.0"})]
        )
        assert len(services) == 1
        svc = services[0]
        assert svc.name == "acme/web"
        assert svc.path == "."
        assert svc.language == "javascript"
        assert len(svc.components) == 1
        comp = svc.components[0]
        assert (comp.name, comp.version, comp.type) == ("left-pad", "1.0.0", ComponentType.DEPENDENCY)
        assert comp.ecosystem == Ecosystem.NPM

    def test_one_service_per_directory(self):
        services = DependencyNormalizer().build_services(
            "mono",
            [
                _npm("package.json", {"a": "1.0.0"}),
                _npm("services/api/package.json", {"b": "2.0.0"}),
                ManifestContent(
                    path="services/api/Dockerfile",
                    ecosystem=Ecosystem.DOCKER,
                    content="FROM node:22-alpine\n",
                ),
            ],
        )
        assert [s.path for s in services] == [".", "services/api"]
        api = services[1]
        assert api.name == "api"
        assert api.id == "mono-services-api"
        assert api.manifest_files == ["package.json", "Dockerfile"]
        assert api.base_image == "node:22-alpine"
        assert api.runtime == "node"
        assert api.runtime_version == "22"
        assert api.eol is False

    def test_duplicate_within_manifest_last_write_wins(self):
        content = json.dumps(
            {"dependencies": {"lodash": "^4.17.0"}, "devDependencies": {"lodash": "4.17.21"}}
        )
        services = DependencyNormalizer().build_services(
            "r", [ManifestContent(path="package.json", ecosystem=Ecosystem.NPM, content=content)]
        )
        comps = services[0].components
        assert len(comps) == 1
        assert comps[0].version == "4.17.21"
        assert comps[0].type == ComponentType.DEV_DEPENDENCY

    def test_duplicate_across_manifests_same_directory(self):
        gradle = (
            "dependencies {\n"
            "  implementation 'org.slf4j:slf4j-api:1.7.36'\n"
            "  implementation 'org.slf4j:slf4j-api:2.0.9'\n"
            "}\n"
        )
        services = DependencyNormalizer().build_services(
            "r",
            [ManifestContent(path="build.gradle", ecosystem=Ecosystem.GRADLE, content=gradle)],
        )
        comps = services[0].components
        assert [(c.name, c.version) for c in comps] == [("org.slf4j:slf4j-api", "2.0.9")]

    def test_same_name_different_ecosystem_kept(self):
        services = DependencyNormalizer().build_services(
            "r",
            [
                _npm("package.json", {"node": "18.0.0"}),
                ManifestContent(path="Dockerfile", ecosystem=Ecosystem.DOCKER, content="FROM node:18\n"),
            ],
        )
        assert {(c.name, c.ecosystem) for c in services[0].components} == {
            ("node", Ecosystem.NPM),
            ("node", Ecosystem.DOCKER),
        }

    def test_parse_failure_does_not_block_siblings(self):
        services = DependencyNormalizer().build_services(
            "r",
            [
                ManifestContent(path="pom.xml", ecosystem=Ecosystem.MAVEN, content="<project"),
                _npm("package.json", {"express": "4.18.2"}),
            ],
        )
        svc = services[0]
        assert [c.name for c in svc.components] == ["express"]
        assert len(svc.warnings) == 1
        assert svc.warnings[0].startswith("pom.xml: invalid XML")

    def test_fetch_error_becomes_warning(self):
        services = DependencyNormalizer().build_services(
            "r",
            [ManifestContent(path="pom.xml", ecosystem=Ecosystem.MAVEN, error="timed out after 30.0s")],
        )
        assert services[0].components == []
        assert services[0].warnings == ["pom.xml: fetch failed: timed out after 30.0s"]

    def test_denylist_hit_flags_component(self):
        services = DependencyNormalizer().build_services(
            "r", [_npm("package.json", {"axis2-client": "1.0.0"})]
        )
        comp = services[0].components[0]
        assert comp.flagged is True
        assert comp.flag_reason.startswith("Apache Axis2")

    def test_infer_language(self):
        assert infer_language({Ecosystem.DOCKER, Ecosystem.MAVEN}) == "java"
        assert infer_language({Ecosystem.PERL}) == "perl"
        assert infer_language({Ecosystem.NODE_RUNTIME}) == "unknown"


# ── Lookup annotation ────────────────────────────────────────────────────


class TestAnnotate:
    @pytest.mark.anyio
    async def test_null_lookup_passes_components_through(self):
        services = await DependencyNormalizer(NullLookup()).normalize(
            "r", [_npm("package.json", {"react": "18.2.0"})]
        )
        comp = services[0].components[0]
        assert comp.latest_version is None
        assert comp.flagged is False

    @pytest.mark.anyio
    async def test_answer_passed_through(self):
        lookup = AsyncMock()
        lookup.lookup.return_value = LookupAnswer(
            eol_date=date(2020, 1, 1), eol=True, vulnerability_count=2, latest_version="18.2.0"
        )
        services = await DependencyNormalizer(lookup).normalize(
            "r", [_npm("package.json", {"react": "16.0.0"})]
        )
        comp = services[0].components[0]
        assert comp.latest_version == "18.2.0"
        assert comp.eol is True
        assert comp.vulnerability_count == 2
        assert comp.flagged is True
        assert comp.flag_reason == "End of Life"
        lookup.lookup.assert_any_await("react", "16.0.0", "npm")

    @pytest.mark.anyio
    async def test_vulnerabilities_flag(self):
        lookup = AsyncMock()
        lookup.lookup.return_value = LookupAnswer(vulnerability_count=3)
        services = await DependencyNormalizer(lookup).normalize(
            "r", [_npm("package.json", {"minimist": "0.0.8"})]
        )
        assert services[0].components[0].flag_reason == "Security vulnerabilities (3)"

    @pytest.mark.anyio
    async def test_lookup_failure_means_no_data(self):
        lookup = AsyncMock()
        lookup.lookup.side_effect = RuntimeError("registry down")
        services = await DependencyNormalizer(lookup).normalize(
            "r", [_npm("package.json", {"react": "16.0.0"})]
        )
        assert services[0].components[0].latest_version is None

    @pytest.mark.anyio
    async def test_runtime_eol_from_lookup(self):
        async def _lookup(name, version, ecosystem):
            if ecosystem == RUNTIME and name == "node":
                return LookupAnswer(eol=True)
            return None

        lookup = AsyncMock()
        lookup.lookup.side_effect = _lookup
        services = await DependencyNormalizer(lookup).normalize(
            "r", [ManifestContent(path=".nvmrc", ecosystem=Ecosystem.NODE_RUNTIME, content="lts/x\n")]
        )
        assert services[0].eol is True


# ── EndOfLifeLookup ──────────────────────────────────────────────────────


def _eol_transport(calls: list[str]) -> httpx.MockTransport:
    cycles = {
        "/api/nodejs.json": [
            {"cycle": "22", "eol": "2027-04-30", "latest": "22.11.0"},
            {"cycle": "18", "eol": "2025-04-30", "latest": "18.20.5"},
        ],
        "/api/react.json": [{"cycle": "18", "eol": False, "latest": "18.3.1"}],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        data = cycles.get(request.url.path)
        if data is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json=data)

    return httpx.MockTransport(handler)


class TestEndOfLifeLookup:
    @pytest.mark.anyio
    async def test_runtime_past_eol(self):
        calls: list[str] = []
        client = httpx.AsyncClient(base_url="https://endoflife.date/api", transport=_eol_transport(calls))
        lookup = EndOfLifeLookup(client=client, today=date(2026, 1, 1))
        answer = await lookup.lookup("node", "18.19.0", RUNTIME)
        assert answer.eol is True
        assert answer.eol_date == date(2025, 4, 30)
        assert answer.latest_version == "18.20.5"
        await lookup.close()

    @pytest.mark.anyio
    async def test_product_table_cached(self):
        calls: list[str] = []
        client = httpx.AsyncClient(base_url="https://endoflife.date/api", transport=_eol_transport(calls))
        lookup = EndOfLifeLookup(client=client, today=date(2026, 1, 1))
        first = await lookup.lookup("node", "22", RUNTIME)
        await lookup.lookup("node", "18", RUNTIME)
        assert first.eol is False
        assert calls == ["/api/nodejs.json"]
        await lookup.close()

    @pytest.mark.anyio
    async def test_boolean_eol_field(self):
        client = httpx.AsyncClient(base_url="https://endoflife.date/api", transport=_eol_transport([]))
        lookup = EndOfLifeLookup(client=client)
        answer = await lookup.lookup("react", "18.2.0", "npm")
        assert answer.eol is False
        assert answer.eol_date is None
        assert answer.latest_version == "18.3.1"
        await lookup.close()

    @pytest.mark.anyio
    async def test_unknown_product_and_http_error(self):
        client = httpx.AsyncClient(base_url="https://endoflife.date/api", transport=_eol_transport([]))
        lookup = EndOfLifeLookup(client=client)
        assert await lookup.lookup("left-pad", "1.0.0", "npm") is None
        assert await lookup.lookup("python", "3.8", RUNTIME) is None
        await lookup.close()

    def test_create_lookup(self):
        assert isinstance(create_lookup("none"), NullLookup)
        assert isinstance(create_lookup("endoflife"), EndOfLifeLookup)


# ── Technology summary ───────────────────────────────────────────────────


class TestTechnologies:
    def test_categorize(self):
        assert categorize("express") == "framework"
        assert categorize("org.springframework:spring-core") == "framework"
        assert categorize("jest") == "testing"
        assert categorize("DBD::mysql") == "database"
        assert categorize("left-pad") == "other"

    def test_summary_sorted_by_usage(self):
        normalizer = DependencyNormalizer()
        services = normalizer.build_services(
            "shop",
            [
                _npm("web/package.json", {"express": "4.0.0"}),
                _npm("api/package.json", {"express": "4.1.0", "jest": "29.0.0"}),
            ],
        )
        techs = summarize_technologies(services)
        top = techs[0]
        assert top.service_count == 2
        assert {t.name for t in techs} >= {"express", "jest", "JavaScript/Node.js", "node"}
        jest = next(t for t in techs if t.name == "jest")
        assert jest.services == ["api"]
        assert all(t.category != "other" for t in techs)
