"""Parsers for single-value runtime pin files (.nvmrc, .node-version, .java-version)."""

from __future__ import annotations

from depsentinel.engines.dependency_scanner.flags import is_java_eol, is_node_eol
from depsentinel.engines.dependency_scanner.models import Ecosystem, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser


def _first_value(content: str) -> str | None:
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            return line
    return None


class NodeVersionParser:
    ecosystem = Ecosystem.NODE_RUNTIME

    def parse(self, content: str) -> ParseResult:
        value = _first_value(content)
        if value is None:
            return ParseResult(runtime="node")
        version = value[1:] if value[:1] in ("v", "V") and value[1:2].isdigit() else value
        return ParseResult(runtime="node", runtime_version=version, runtime_eol=is_node_eol(version))


class JavaVersionParser:
    ecosystem = Ecosystem.JAVA_RUNTIME

    def parse(self, content: str) -> ParseResult:
        version = _first_value(content)
        return ParseResult(runtime="java", runtime_version=version, runtime_eol=is_java_eol(version))


register_parser(NodeVersionParser())
register_parser(JavaVersionParser())
