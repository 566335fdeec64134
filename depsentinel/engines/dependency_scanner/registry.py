"""Parser registry — one parser per ecosystem, dispatch never raises."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from depsentinel.engines.dependency_scanner.models import Ecosystem, ParseResult

log = structlog.get_logger("depsentinel.engine")


class ParseError(Exception):
    """Raised inside a parser for malformed manifest content."""


@runtime_checkable
class ManifestParser(Protocol):
    """Interface that every manifest parser must satisfy."""

    ecosystem: Ecosystem

    def parse(self, content: str) -> ParseResult: ...


PARSER_REGISTRY: dict[Ecosystem, ManifestParser] = {}


def register_parser(parser: ManifestParser) -> None:
    """Register a parser instance by its ecosystem."""
    PARSER_REGISTRY[parser.ecosystem] = parser


def get_parser(ecosystem: Ecosystem) -> ManifestParser:
    try:
        return PARSER_REGISTRY[ecosystem]
    except KeyError:
        raise LookupError(f"no parser registered for ecosystem {ecosystem.value!r}") from None


def parse_manifest(ecosystem: Ecosystem, content: str) -> ParseResult:
    """Run the parser for *ecosystem*, turning any failure into ``ParseResult.error``."""
    parser = get_parser(ecosystem)
    # Editors on Windows like to prepend a BOM; json.loads rejects it
    content = content.removeprefix("\ufeff")
    try:
        return parser.parse(content)
    except ParseError as exc:
        return ParseResult(error=str(exc))
    except Exception as exc:  # noqa: BLE001
        log.warning("parser.crashed", ecosystem=ecosystem.value, error=str(exc))
        return ParseResult(error=f"{type(exc).__name__}: {exc}")
