"""Manifest parsers — auto-registered on import."""

from depsentinel.engines.dependency_scanner.models import Ecosystem
from depsentinel.engines.dependency_scanner.parsers import (
    ant_build,  # noqa: F401
    dockerfile,  # noqa: F401
    gradle_build,  # noqa: F401
    maven_pom,  # noqa: F401
    package_json,  # noqa: F401
    perl,  # noqa: F401
    runtime_files,  # noqa: F401
)
from depsentinel.engines.dependency_scanner.registry import PARSER_REGISTRY

_missing = sorted(e.value for e in Ecosystem if e not in PARSER_REGISTRY)
if _missing:
    raise ImportError(f"ecosystems without a registered parser: {', '.join(_missing)}")
