"""Parser for Perl manifests (cpanfile and ExtUtils::MakeMaker Makefile.PL)."""

from __future__ import annotations

import re

from depsentinel.engines.dependency_scanner.flags import flag_reason
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ParsedDependency,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import register_parser

# ── cpanfile ─────────────────────────────────────────────────────────────

_CPAN_STMT_RE = re.compile(
    r"\b(requires|recommends|suggests|test_requires|build_requires|"
    r"configure_requires|author_requires)"
    r"""\s*\(?\s*['"]([^'"]+)['"]"""
    r"""(?:\s*(?:,|=>)\s*(?:['"]([^'"]*)['"]|([\d.v_]+)))?"""
)
_CPAN_PHASE_RE = re.compile(r"""\bon\s+['"]?(\w+)['"]?\s*=>\s*sub\s*\{""")

_PHASE_TYPES = {
    "runtime": ComponentType.DEPENDENCY,
    "test": ComponentType.DEV_DEPENDENCY,
    "develop": ComponentType.DEV_DEPENDENCY,
    "build": ComponentType.BUILD_DEPENDENCY,
    "configure": ComponentType.BUILD_DEPENDENCY,
}

_KEYWORD_PHASES = {
    "test_requires": "test",
    "author_requires": "develop",
    "build_requires": "build",
    "configure_requires": "configure",
}

# ── Makefile.PL ──────────────────────────────────────────────────────────

_MM_HASH_RE = re.compile(
    r"\b(PREREQ_PM|BUILD_REQUIRES|TEST_REQUIRES|CONFIGURE_REQUIRES)\s*=>\s*\{([^}]*)\}",
    re.DOTALL,
)
_MM_PAIR_RE = re.compile(r"""['"]?([\w:]+)['"]?\s*=>\s*['"]?([^'",\s}]+)['"]?""")
_MM_MIN_PERL_RE = re.compile(r"""\bMIN_PERL_VERSION\s*=>\s*['"]?([v\d._]+)['"]?""")
_MM_KEY_PHASES = {
    "PREREQ_PM": "runtime",
    "BUILD_REQUIRES": "build",
    "TEST_REQUIRES": "test",
    "CONFIGURE_REQUIRES": "configure",
}

_VERSION_OPS_RE = re.compile(r"^[<>=!\s]+")


def _clean_version(raw: str | None) -> str:
    if not raw:
        return "unknown"
    version = _VERSION_OPS_RE.sub("", raw.strip())
    return "unknown" if version in ("", "0") else version


def _phase_ranges(content: str) -> list[tuple[int, int, str]]:
    """Return (start, end, phase) spans of ``on 'phase' => sub { ... }`` blocks."""
    spans: list[tuple[int, int, str]] = []
    for m in _CPAN_PHASE_RE.finditer(content):
        depth = 1
        pos = m.end()
        while pos < len(content) and depth:
            ch = content[pos]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
            pos += 1
        spans.append((m.end(), pos, m.group(1)))
    return spans


def _phase_at(pos: int, spans: list[tuple[int, int, str]]) -> str:
    for start, end, phase in spans:
        if start <= pos < end:
            return phase
    return "runtime"


class PerlManifestParser:
    ecosystem = Ecosystem.PERL

    def parse(self, content: str) -> ParseResult:
        if "WriteMakefile" in content or _MM_HASH_RE.search(content):
            return self._parse_makefile_pl(content)
        return self._parse_cpanfile(content)

    @staticmethod
    def _parse_cpanfile(content: str) -> ParseResult:
        spans = _phase_ranges(content)
        components: list[ParsedDependency] = []
        perl_version: str | None = None

        for line_start, line in _code_lines(content):
            for m in _CPAN_STMT_RE.finditer(line):
                keyword, module = m.group(1), m.group(2)
                raw_version = m.group(3) if m.group(3) is not None else m.group(4)
                if module == "perl":
                    perl_version = _clean_version(raw_version)
                    continue
                phase = _KEYWORD_PHASES.get(keyword) or _phase_at(line_start + m.start(), spans)
                scope = keyword if keyword in ("recommends", "suggests") else phase
                components.append(
                    ParsedDependency(
                        name=module,
                        version=_clean_version(raw_version),
                        type=_PHASE_TYPES.get(phase, ComponentType.DEPENDENCY),
                        scope=scope,
                        flag_reason=flag_reason(module),
                    )
                )

        return ParseResult(
            components=components,
            runtime="perl",
            runtime_version=perl_version if perl_version != "unknown" else None,
        )

    @staticmethod
    def _parse_makefile_pl(content: str) -> ParseResult:
        components: list[ParsedDependency] = []
        for block in _MM_HASH_RE.finditer(content):
            phase = _MM_KEY_PHASES[block.group(1)]
            for pair in _MM_PAIR_RE.finditer(block.group(2)):
                module, raw_version = pair.group(1), pair.group(2)
                if module == "perl":
                    continue
                components.append(
                    ParsedDependency(
                        name=module,
                        version=_clean_version(raw_version),
                        type=_PHASE_TYPES[phase],
                        scope=phase,
                        flag_reason=flag_reason(module),
                    )
                )
        m = _MM_MIN_PERL_RE.search(content)
        return ParseResult(
            components=components,
            runtime="perl",
            runtime_version=m.group(1) if m else None,
        )


def _code_lines(content: str):
    """Yield (offset, line) pairs with ``#`` comment lines dropped."""
    offset = 0
    for line in content.splitlines(keepends=True):
        if not line.lstrip().startswith("#"):
            yield offset, line
        offset += len(line)


register_parser(PerlManifestParser())
