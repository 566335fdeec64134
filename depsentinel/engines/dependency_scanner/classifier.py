"""Map repository file paths to manifest ecosystems.

Exact-filename rules are tried before pattern rules; within each group the
first matching rule wins.
"""

from __future__ import annotations

import re
from posixpath import basename

from depsentinel.core.config import DEFAULT_MAX_MANIFEST_BYTES
from depsentinel.engines.dependency_scanner.models import Ecosystem

EXACT_RULES: tuple[tuple[str, Ecosystem], ...] = (
    ("package.json", Ecosystem.NPM),
    ("pom.xml", Ecosystem.MAVEN),
    ("build.gradle", Ecosystem.GRADLE),
    ("build.gradle.kts", Ecosystem.GRADLE),
    ("build.xml", Ecosystem.ANT),
    ("cpanfile", Ecosystem.PERL),
    ("Makefile.PL", Ecosystem.PERL),
    ("Dockerfile", Ecosystem.DOCKER),
    (".nvmrc", Ecosystem.NODE_RUNTIME),
    (".node-version", Ecosystem.NODE_RUNTIME),
    (".java-version", Ecosystem.JAVA_RUNTIME),
)

PATTERN_RULES: tuple[tuple[re.Pattern[str], Ecosystem], ...] = (
    (re.compile(r"^Dockerfile\.[\w.-]+$"), Ecosystem.DOCKER),
    (re.compile(r"^[\w.-]+\.Dockerfile$"), Ecosystem.DOCKER),
)

# Vendored / generated trees are never service manifests
_IGNORED_DIRS = frozenset({"node_modules", "vendor", ".git", "bower_components"})

_EXACT = dict(EXACT_RULES)


def classify(
    path: str,
    size: int | None = None,
    *,
    max_bytes: int = DEFAULT_MAX_MANIFEST_BYTES,
) -> Ecosystem | None:
    """Return the ecosystem owning *path*, or None if it is not a manifest."""
    if size is not None and size > max_bytes:
        return None
    parts = path.split("/")
    if any(part in _IGNORED_DIRS for part in parts[:-1]):
        return None

    name = basename(path)
    hit = _EXACT.get(name)
    if hit is not None:
        return hit
    for pattern, ecosystem in PATTERN_RULES:
        if pattern.match(name):
            return ecosystem
    return None
