"""Parser for Apache Ant build.xml files.

Ant has no dependency declarations of its own; version-like ``<property>``
values (``<property name="commons-io.version" value="2.11.0"/>``) are the
closest thing and are reported as build dependencies.
"""

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

_VERSION_VALUE_RE = re.compile(r"^\d+\.\d+")
_VERSION_SUFFIX_RE = re.compile(r"[._-]?(version|ver)$", re.IGNORECASE)


class AntBuildParser:
    ecosystem = Ecosystem.ANT

    def parse(self, content: str) -> ParseResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as exc:
            raise ParseError(f"invalid XML: {exc}") from exc

        components: list[ParsedDependency] = []
        for el in root.iter():
            if el.tag not in ("property", "taskdef"):
                continue
            name = el.get("name")
            value = el.get("value")
            if not name or not value or not _VERSION_VALUE_RE.match(value):
                continue
            library = _VERSION_SUFFIX_RE.sub("", name) or name
            components.append(
                ParsedDependency(
                    name=library,
                    version=value,
                    type=ComponentType.BUILD_DEPENDENCY,
                    scope="ant-property",
                    flag_reason=flag_reason(library),
                )
            )

        java_version = None
        for javac in root.iter("javac"):
            java_version = javac.get("release") or javac.get("target") or javac.get("source")
            if java_version and not java_version.startswith("${"):
                break
            java_version = None

        return ParseResult(
            components=components,
            runtime="java" if java_version else None,
            runtime_version=java_version,
            runtime_eol=is_java_eol(java_version),
        )


register_parser(AntBuildParser())
