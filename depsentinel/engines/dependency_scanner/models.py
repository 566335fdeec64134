"""Data models for the dependency scanner engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Ecosystem(str, Enum):
    """Closed set of manifest ecosystems, one parser each."""

    NPM = "npm"
    MAVEN = "maven"
    GRADLE = "gradle"
    ANT = "ant"
    DOCKER = "docker"
    PERL = "perl"
    NODE_RUNTIME = "node-runtime"
    JAVA_RUNTIME = "java-runtime"


class ComponentType(str, Enum):
    DEPENDENCY = "dependency"
    DEV_DEPENDENCY = "devDependency"
    BUILD_DEPENDENCY = "buildDependency"


@dataclass
class ParsedDependency:
    """A single dependency as a parser saw it, before normalization."""

    name: str
    version: str
    type: ComponentType = ComponentType.DEPENDENCY
    scope: str | None = None
    flag_reason: str | None = None


@dataclass
class ParseResult:
    """Output of one manifest parser.

    Parsers never raise; a malformed manifest yields an empty component list
    and ``error`` set.
    """

    components: list[ParsedDependency] = field(default_factory=list)
    runtime: str | None = None
    runtime_version: str | None = None
    runtime_eol: bool = False
    base_image: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ServiceComponent:
    """Normalized dependency record, immutable once built."""

    name: str
    version: str
    type: ComponentType
    ecosystem: Ecosystem
    scope: str | None = None
    latest_version: str | None = None
    eol: bool = False
    vulnerability_count: int = 0
    flagged: bool = False
    flag_reason: str | None = None


@dataclass
class ServiceSummary:
    """A buildable unit inside a repository (one directory with manifests)."""

    id: str
    name: str
    path: str
    language: str
    manifest_files: list[str] = field(default_factory=list)
    components: list[ServiceComponent] = field(default_factory=list)
    runtime: str | None = None
    runtime_version: str | None = None
    eol: bool = False
    base_image: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class TechnologySummary:
    name: str
    category: str
    version: str | None = None
    service_count: int = 0
    services: list[str] = field(default_factory=list)


@dataclass
class ManifestContent:
    """Raw manifest text (or the fetch error) handed to the normalizer."""

    path: str
    ecosystem: Ecosystem
    content: str | None = None
    error: str | None = None
