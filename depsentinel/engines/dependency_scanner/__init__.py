"""Dependency scanner engine — classify, parse and normalize manifests."""

# Ensure parsers are registered before any manifest is parsed.
import depsentinel.engines.dependency_scanner.parsers  # noqa: F401
from depsentinel.engines.dependency_scanner.classifier import classify
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ManifestContent,
    ServiceComponent,
    ServiceSummary,
)
from depsentinel.engines.dependency_scanner.normalizer import DependencyNormalizer
from depsentinel.engines.dependency_scanner.registry import parse_manifest

__all__ = [
    "ComponentType",
    "DependencyNormalizer",
    "Ecosystem",
    "ManifestContent",
    "ServiceComponent",
    "ServiceSummary",
    "classify",
    "parse_manifest",
]
