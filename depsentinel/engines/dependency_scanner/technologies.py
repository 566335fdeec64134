"""Technology summary — which languages, runtimes and frameworks a run uses."""

from __future__ import annotations

from depsentinel.engines.dependency_scanner.models import ServiceSummary, TechnologySummary

_LANGUAGE_NAMES = {
    "javascript": "JavaScript/Node.js",
    "java": "Java",
    "python": "Python",
    "perl": "Perl",
    "docker": "Docker",
}

# Checked in order; a component matches the first category whose keyword it contains
_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("framework", (
        "express", "react", "angular", "vue", "svelte", "next", "nuxt",
        "spring", "hibernate", "struts", "django", "flask", "fastapi",
        "rails", "laravel", "symfony", "mojolicious", "dancer", "catalyst",
    )),
    ("database", (
        "mysql", "postgresql", "postgres", "mongodb", "redis", "sqlite",
        "oracle", "mariadb", "cassandra", "elasticsearch", "dynamodb", "neo4j",
        "dbi", "dbd",
    )),
    ("build-tool", (
        "maven", "gradle", "webpack", "vite", "rollup", "parcel", "esbuild",
        "gulp", "grunt", "babel",
    )),
    ("testing", (
        "jest", "mocha", "chai", "jasmine", "karma", "cypress", "playwright",
        "selenium", "junit", "testng", "mockito", "test::",
    )),
    ("container", (
        "docker", "kubernetes", "nginx", "tomcat", "jetty", "undertow",
    )),
    ("cloud", ("aws", "azure", "gcp", "google-cloud", "firebase")),
    ("monitoring", (
        "prometheus", "grafana", "datadog", "newrelic", "sentry", "opentelemetry",
    )),
    ("security", ("oauth", "jwt", "passport", "keycloak", "bcrypt", "crypt::")),
)


def categorize(component_name: str) -> str:
    name = component_name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return "other"


def summarize_technologies(services: list[ServiceSummary]) -> list[TechnologySummary]:
    """Count services per technology, most widely used first.

    Uncategorized components are left out to keep the summary readable.
    """
    techs: dict[str, TechnologySummary] = {}

    def _add(key: str, name: str, category: str, version: str | None, service: str) -> None:
        tech = techs.get(key)
        if tech is None:
            tech = TechnologySummary(name=name, category=category, version=version)
            techs[key] = tech
        if service not in tech.services:
            tech.services.append(service)
            tech.service_count += 1

    for service in services:
        if service.language != "unknown":
            _add(
                f"language-{service.language}",
                _LANGUAGE_NAMES.get(service.language, service.language.capitalize()),
                "language", None, service.name,
            )
        if service.runtime:
            _add(
                f"runtime-{service.runtime}", service.runtime, "runtime",
                service.runtime_version, service.name,
            )
        if service.base_image:
            _add(
                f"container-{service.base_image}", service.base_image, "container",
                None, service.name,
            )
        for comp in service.components:
            category = categorize(comp.name)
            if category == "other":
                continue
            _add(f"{category}-{comp.name}", comp.name, category, comp.version, service.name)

    # sorted() is stable, so ties keep first-seen order
    return sorted(techs.values(), key=lambda t: t.service_count, reverse=True)
