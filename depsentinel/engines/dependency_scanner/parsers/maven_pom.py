"""Parser for Maven pom.xml files."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from depsentinel.engines.dependency_scanner.flags import flag_reason, is_java_eol
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ParsedDependency,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import ParseError, register_parser

_PROP_RE = re.compile(r"\$\{([^}]+)\}")
_MAX_COMPONENTS = 100
# Nested properties (${a} -> ${b} -> 1.0) are resolved up to this depth
_MAX_RESOLVE_PASSES = 5

_JAVA_VERSION_PROPS = (
    "maven.compiler.release",
    "maven.compiler.target",
    "maven.compiler.source",
    "java.version",
)


def resolve_props(value: str, props: dict[str, str]) -> str:
    """Replace ${property} placeholders with values from *props*.

    Unknown properties are kept as the literal ``${name}`` token.
    """

    def _replace(m: re.Match) -> str:
        return props.get(m.group(1), m.group(0))

    for _ in range(_MAX_RESOLVE_PASSES):
        resolved = _PROP_RE.sub(_replace, value)
        if resolved == value:
            break
        value = resolved
    return value


class _Pom:
    """Namespace-agnostic accessor over a parsed POM tree."""

    def __init__(self, root: ET.Element) -> None:
        self.root = root
        self.ns = root.tag[: root.tag.index("}") + 1] if root.tag.startswith("{") else ""

    def find(self, el: ET.Element, path: str) -> ET.Element | None:
        return el.find("/".join(f"{self.ns}{part}" for part in path.split("/")))

    def findall(self, el: ET.Element, path: str) -> list[ET.Element]:
        return el.findall("/".join(f"{self.ns}{part}" for part in path.split("/")))

    def text(self, el: ET.Element, path: str) -> str | None:
        child = self.find(el, path)
        if child is None or not child.text:
            return None
        return child.text.strip() or None

    def local(self, tag: str) -> str:
        return tag.split("}", 1)[-1]


class MavenPomParser:
    ecosystem = Ecosystem.MAVEN

    def parse(self, content: str) -> ParseResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as exc:
            raise ParseError(f"invalid XML: {exc}") from exc

        pom = _Pom(root)
        if pom.local(root.tag) != "project":
            raise ParseError("pom.xml root element is not <project>")

        props = self._extract_properties(pom)
        components: list[ParsedDependency] = []

        for dep_el in pom.findall(root, "dependencies/dependency"):
            scope = pom.text(dep_el, "scope")
            dep_type = (
                ComponentType.DEV_DEPENDENCY if scope == "test" else ComponentType.DEPENDENCY
            )
            self._append(pom, dep_el, props, dep_type, scope, components)

        for dep_el in pom.findall(root, "dependencyManagement/dependencies/dependency"):
            self._append(
                pom, dep_el, props, ComponentType.BUILD_DEPENDENCY, "management", components
            )

        for plugin_el in pom.findall(root, "build/plugins/plugin"):
            self._append(
                pom, plugin_el, props, ComponentType.BUILD_DEPENDENCY, "plugin", components,
                default_group="org.apache.maven.plugins",
            )

        java_version = self._java_version(pom, props)
        return ParseResult(
            components=components[:_MAX_COMPONENTS],
            runtime="java" if java_version else None,
            runtime_version=java_version,
            runtime_eol=is_java_eol(java_version),
        )

    @staticmethod
    def _append(
        pom: _Pom,
        el: ET.Element,
        props: dict[str, str],
        dep_type: ComponentType,
        scope: str | None,
        out: list[ParsedDependency],
        default_group: str | None = None,
    ) -> None:
        group_id = pom.text(el, "groupId") or default_group
        artifact_id = pom.text(el, "artifactId")
        if not artifact_id:
            return
        group_id = resolve_props(group_id, props) if group_id else None
        artifact_id = resolve_props(artifact_id, props)
        version = pom.text(el, "version")
        version = resolve_props(version, props) if version else "unknown"

        out.append(
            ParsedDependency(
                name=f"{group_id}:{artifact_id}" if group_id else artifact_id,
                version=version,
                type=dep_type,
                scope=scope,
                flag_reason=flag_reason(group_id, artifact_id),
            )
        )

    @staticmethod
    def _extract_properties(pom: _Pom) -> dict[str, str]:
        """Collect <properties> plus the implicit project.* coordinates."""
        props: dict[str, str] = {}
        root = pom.root
        for key, path in (
            ("project.groupId", "groupId"),
            ("project.artifactId", "artifactId"),
            ("project.version", "version"),
            ("project.parent.version", "parent/version"),
        ):
            value = pom.text(root, path)
            if value:
                props[key] = value
        if "project.version" not in props and "project.parent.version" in props:
            props["project.version"] = props["project.parent.version"]
        if "project.groupId" not in props:
            parent_group = pom.text(root, "parent/groupId")
            if parent_group:
                props["project.groupId"] = parent_group

        props_el = pom.find(root, "properties")
        if props_el is not None:
            for child in props_el:
                if child.text and child.text.strip():
                    props[pom.local(child.tag)] = child.text.strip()
        return props

    @staticmethod
    def _java_version(pom: _Pom, props: dict[str, str]) -> str | None:
        for plugin_el in pom.findall(pom.root, "build/plugins/plugin"):
            if pom.text(plugin_el, "artifactId") != "maven-compiler-plugin":
                continue
            for key in ("release", "target", "source"):
                value = pom.text(plugin_el, f"configuration/{key}")
                if value:
                    resolved = resolve_props(value, props)
                    if not _PROP_RE.search(resolved):
                        return resolved
        for key in _JAVA_VERSION_PROPS:
            if key in props:
                return props[key]
        return None


register_parser(MavenPomParser())
