"""Parser for Gradle build files (build.gradle / build.gradle.kts).

Extracts dependencies declared with standard Gradle configurations like
implementation, api, compileOnly, runtimeOnly, etc.

Handles both Groovy DSL and Kotlin DSL syntax:
  - implementation "group:artifact:version"
  - implementation("group:artifact:$version")
  - implementation group: 'g', name: 'a', version: 'v'
  - implementation(group = "g", name = "a", version = "v")
  - api(project(":submodule"))          → skipped (internal)

Version strings may reference variables declared in the same file
(``ext { x = '1.0' }``, ``ext.x = '1.0'``, ``def x = '1.0'``,
``val x = "1.0"``, ``extra["x"] = "1.0"``); references that cannot be
resolved locally are kept as the literal token.
"""

from __future__ import annotations

import re

from depsentinel.engines.dependency_scanner.flags import flag_reason, is_java_eol
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ParsedDependency,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import register_parser

_MAX_COMPONENTS = 100

# Gradle configuration names (not exhaustive, but covers the common ones)
_CONFIGS = (
    r"(implementation|api|compileOnly|compileOnlyApi|runtimeOnly|"
    r"annotationProcessor|kapt|ksp|classpath|"
    r"testImplementation|testCompileOnly|testRuntimeOnly|"
    r"androidTestImplementation|debugImplementation|releaseImplementation|"
    r"optional|provided|compile|runtime|testCompile|testRuntime|"
    r"\w+Implementation|\w+Api|\w+CompileOnly|\w+RuntimeOnly)"
)

# configuration("group:artifact:version") or configuration "group:artifact:version"
_STRING_DEP_RE = re.compile(
    rf"\b{_CONFIGS}"
    r"\s*\(?\s*"
    r"""["']"""
    r"([A-Za-z0-9._-]+)"             # group
    r":"
    r"([A-Za-z0-9._-]+)"             # artifact
    r"""(?::([^"':@]+))?"""          # optional version
    r"""(?::[^"'@]+)?(?:@\w+)?"""    # optional classifier / @ext
    r"""["']"""
)

# configuration group: 'g', name: 'a', version: 'v'  (Groovy map / Kotlin named args)
_MAP_DEP_RE = re.compile(
    rf"\b{_CONFIGS}"
    r"\s*\(?\s*"
    r"""group\s*[:=]\s*["']([^"']+)["']\s*,\s*"""
    r"""name\s*[:=]\s*["']([^"']+)["']"""
    r"""(?:\s*,\s*version\s*[:=]\s*["']([^"']+)["'])?"""
)

_VAR_DECL_RES = (
    # ext.springVersion = '5.3.0' / def x = '1' / val x = "1" / var x = "1"
    re.compile(r"""(?:\bext\.|\bdef\s+|\bval\s+|\bvar\s+)(\w+)\s*=\s*["']([^"'$]+)["']"""),
    # extra["x"] = "1" / extra.set("x", "1") / set("x", "1")
    re.compile(r"""\bextra\[\s*["'](\w+)["']\s*\]\s*=\s*["']([^"'$]+)["']"""),
    re.compile(r"""\bset\(\s*["'](\w+)["']\s*,\s*["']([^"'$]+)["']\s*\)"""),
)
_EXT_BLOCK_RE = re.compile(r"\bext\s*\{([^}]*)\}", re.DOTALL)
_BLOCK_ASSIGN_RE = re.compile(r"""(\w+)\s*=\s*["']([^"'$]+)["']""")
_VAR_REF_RE = re.compile(r"\$\{([^}]+)\}|\$(\w+)")

# String literals are matched first so a `//` inside a URL is not a comment
_COMMENT_RE = re.compile(
    r"'''[\s\S]*?'''|\"\"\"[\s\S]*?\"\"\""
    r"""|'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*\""""
    r"|//[^\n]*|/\*[\s\S]*?\*/"
)

_JAVA_VERSION_RES = (
    re.compile(r"languageVersion\.set\(\s*JavaLanguageVersion\.of\(\s*(\d+)\s*\)"),
    re.compile(r"JavaLanguageVersion\.of\(\s*(\d+)\s*\)"),
    re.compile(r"""sourceCompatibility\s*=\s*['"]?([\d.]+)['"]?"""),
    re.compile(r"""targetCompatibility\s*=\s*['"]?([\d.]+)['"]?"""),
    re.compile(r"JavaVersion\.VERSION_(\d+(?:_\d+)?)"),
    re.compile(r"jvmToolchain\(\s*(\d+)\s*\)"),
)


def strip_comments(content: str) -> str:
    """Blank out ``//`` and ``/* */`` comments, keeping line breaks and string literals."""

    def _blank(m: re.Match) -> str:
        text = m.group(0)
        if text.startswith("/"):
            return re.sub(r"[^\n]", " ", text)
        return text

    return _COMMENT_RE.sub(_blank, content)


def _collect_variables(content: str) -> dict[str, str]:
    variables: dict[str, str] = {}
    for block in _EXT_BLOCK_RE.finditer(content):
        for m in _BLOCK_ASSIGN_RE.finditer(block.group(1)):
            variables[m.group(1)] = m.group(2)
    for pattern in _VAR_DECL_RES:
        for m in pattern.finditer(content):
            variables[m.group(1)] = m.group(2)
    return variables


def resolve_variables(value: str, variables: dict[str, str]) -> str:
    """Substitute ``${name}`` / ``$name`` references; unknown ones stay literal."""

    def _replace(m: re.Match) -> str:
        key = m.group(1) or m.group(2)
        if key in variables:
            return variables[key]
        # ${rootProject.ext.springVersion} / ${versions.spring}
        tail = key.rsplit(".", 1)[-1]
        return variables.get(tail, m.group(0))

    return _VAR_REF_RE.sub(_replace, value)


def clean_gradle_version(version: str) -> str:
    """Strip range brackets and keep the first bound: ``[1.0,2.0)`` -> ``1.0``."""
    cleaned = version.strip().lstrip("[(").rstrip("])")
    return cleaned.split(",", 1)[0].strip()


def _component_type(config: str) -> ComponentType:
    lowered = config.lower()
    if "test" in lowered:
        return ComponentType.DEV_DEPENDENCY
    if config in ("classpath", "annotationProcessor", "kapt", "ksp"):
        return ComponentType.BUILD_DEPENDENCY
    return ComponentType.DEPENDENCY


class GradleBuildParser:
    ecosystem = Ecosystem.GRADLE

    def parse(self, content: str) -> ParseResult:
        content = strip_comments(content)
        variables = _collect_variables(content)
        matches: list[tuple[int, re.Match]] = []
        for pattern in (_STRING_DEP_RE, _MAP_DEP_RE):
            matches.extend((m.start(), m) for m in pattern.finditer(content))
        # Keep declaration order across both notations
        matches.sort(key=lambda item: item[0])

        components: list[ParsedDependency] = []
        for _, m in matches:
            config, group, artifact, version = m.group(1), m.group(2), m.group(3), m.group(4)
            if version:
                version = clean_gradle_version(resolve_variables(version, variables))
            components.append(
                ParsedDependency(
                    name=f"{group}:{artifact}",
                    version=version or "unknown",
                    type=_component_type(config),
                    scope=config,
                    flag_reason=flag_reason(group, artifact),
                )
            )

        java_version = self._java_version(content)
        return ParseResult(
            components=components[:_MAX_COMPONENTS],
            runtime="java" if java_version else None,
            runtime_version=java_version,
            runtime_eol=is_java_eol(java_version),
        )

    @staticmethod
    def _java_version(content: str) -> str | None:
        for pattern in _JAVA_VERSION_RES:
            m = pattern.search(content)
            if m:
                version = m.group(1).replace("_", ".")
                if version.startswith("1.") and len(version) > 2:
                    version = version[2:]
                return version
        return None


register_parser(GradleBuildParser())
