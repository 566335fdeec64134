"""Parser for npm package.json manifests.

Reads ``dependencies``, ``devDependencies`` and ``peerDependencies``. Each
group is capped (50 / 30 / 20 entries) to bound downstream lookup cost on
very large manifests; the cap is a resource limit, not a statement about
which dependencies matter.
"""

from __future__ import annotations

import json
import re

from depsentinel.engines.dependency_scanner.flags import flag_reason, is_node_eol
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ParsedDependency,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import ParseError, register_parser

# (manifest key, component type, scope, cap)
_GROUPS: tuple[tuple[str, ComponentType, str | None, int], ...] = (
    ("dependencies", ComponentType.DEPENDENCY, None, 50),
    ("devDependencies", ComponentType.DEV_DEPENDENCY, None, 30),
    ("peerDependencies", ComponentType.DEPENDENCY, "peer", 20),
)

_RANGE_PREFIX_RE = re.compile(r"^[\^~>=<v]+")
_VERSION_IN_RANGE_RE = re.compile(r"(\d+(?:\.\d+){0,2})")


def clean_version(spec: str) -> str:
    """Strip range operators and anything after the first space.

    ``^1.0.0`` -> ``1.0.0``, ``>=2.1 <3`` -> ``2.1``.
    """
    cleaned = _RANGE_PREFIX_RE.sub("", spec.strip())
    return cleaned.split(" ", 1)[0].strip()


def _engine_version(range_expr: str) -> str:
    m = _VERSION_IN_RANGE_RE.search(range_expr)
    return m.group(1) if m else range_expr.strip()


class PackageJsonParser:
    ecosystem = Ecosystem.NPM

    def parse(self, content: str) -> ParseResult:
        try:
            manifest = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"invalid JSON: {exc.msg} (line {exc.lineno})") from exc
        if not isinstance(manifest, dict):
            raise ParseError("package.json top level is not an object")

        components: list[ParsedDependency] = []
        for key, dep_type, scope, cap in _GROUPS:
            group = manifest.get(key) or {}
            if not isinstance(group, dict):
                continue
            for name, spec in list(group.items())[:cap]:
                version = clean_version(spec) if isinstance(spec, str) else "unknown"
                components.append(
                    ParsedDependency(
                        name=name,
                        version=version or "unknown",
                        type=dep_type,
                        scope=scope,
                        flag_reason=flag_reason(name),
                    )
                )

        runtime_version: str | None = None
        engines = manifest.get("engines")
        if isinstance(engines, dict) and isinstance(engines.get("node"), str):
            runtime_version = _engine_version(engines["node"])

        return ParseResult(
            components=components,
            runtime="node",
            runtime_version=runtime_version,
            runtime_eol=is_node_eol(runtime_version),
        )


register_parser(PackageJsonParser())
