"""Parser for Dockerfiles — base image and runtime detection."""

from __future__ import annotations

import re
from dataclasses import dataclass

from depsentinel.engines.dependency_scanner.flags import (
    flag_reason,
    is_java_eol,
    is_node_eol,
)
from depsentinel.engines.dependency_scanner.models import (
    ComponentType,
    Ecosystem,
    ParsedDependency,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import register_parser

# (image-name pattern, runtime family), first match wins
_RUNTIME_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^node"), "node"),
    (re.compile(r"^(openjdk|adoptopenjdk|eclipse-temurin|amazoncorretto|ibm-semeru)"), "java"),
    (re.compile(r"^python"), "python"),
    (re.compile(r"^ruby"), "ruby"),
    (re.compile(r"^php"), "php"),
    (re.compile(r"^golang"), "go"),
    (re.compile(r"^perl"), "perl"),
    (re.compile(r"^nginx"), "nginx"),
    (re.compile(r"^alpine"), "alpine"),
    (re.compile(r"^ubuntu"), "ubuntu"),
    (re.compile(r"^debian"), "debian"),
)

_TAG_SUFFIX_RE = re.compile(
    r"(-(alpine[\d.]*|slim|bullseye|bookworm|buster|stretch|jammy|focal|jdk|jre|"
    r"windowsservercore[\w-]*))+$"
)
_VERSION_RES = (
    re.compile(r"^(\d+\.\d+\.\d+)"),
    re.compile(r"^(\d+\.\d+)"),
    re.compile(r"^(\d+)"),
)


@dataclass
class Instruction:
    name: str
    args: str


def tokenize(content: str) -> list[Instruction]:
    """Split a Dockerfile into instructions.

    Comments and blank lines are skipped; a trailing backslash joins the
    line with the next one.
    """
    instructions: list[Instruction] = []
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1
        if not line or line.startswith("#"):
            continue
        while line.endswith("\\") and i < len(lines):
            nxt = lines[i].strip()
            i += 1
            if nxt.startswith("#"):
                continue
            line = line[:-1].rstrip() + " " + nxt
        if line.endswith("\\"):
            line = line[:-1].rstrip()
        name, _, args = line.partition(" ")
        instructions.append(Instruction(name=name.upper(), args=args.strip()))
    return instructions


def split_image(ref: str) -> tuple[str, str]:
    """Split ``registry:5000/org/name:tag@sha256:...`` into (name, tag)."""
    ref = ref.split("@", 1)[0]
    last_slash = ref.rfind("/")
    colon = ref.rfind(":")
    if colon > last_slash:
        return ref[:colon], ref[colon + 1 :] or "latest"
    return ref, "latest"


def _version_from_tag(tag: str) -> str | None:
    clean = _TAG_SUFFIX_RE.sub("", tag)
    for pattern in _VERSION_RES:
        m = pattern.match(clean)
        if m:
            return m.group(1)
    if clean in ("latest", "lts", ""):
        return None
    return clean


def runtime_from_image(name: str, tag: str) -> tuple[str | None, str | None]:
    short = name.rsplit("/", 1)[-1].lower()
    for pattern, runtime in _RUNTIME_PATTERNS:
        if pattern.match(short):
            return runtime, _version_from_tag(tag)
    return None, None


class DockerfileParser:
    ecosystem = Ecosystem.DOCKER

    def parse(self, content: str) -> ParseResult:
        from_args = next((ins.args for ins in tokenize(content) if ins.name == "FROM"), None)
        if not from_args:
            return ParseResult()

        tokens = [t for t in from_args.split() if not t.startswith("--")]
        if not tokens:
            return ParseResult()
        base_image = tokens[0]
        name, tag = split_image(base_image)
        runtime, runtime_version = runtime_from_image(name, tag)

        runtime_eol = False
        if runtime == "node":
            runtime_eol = is_node_eol(runtime_version)
        elif runtime == "java":
            runtime_eol = is_java_eol(runtime_version)

        return ParseResult(
            components=[
                ParsedDependency(
                    name=name,
                    version=tag,
                    type=ComponentType.DEPENDENCY,
                    scope="base-image",
                    flag_reason=flag_reason(name),
                )
            ],
            runtime=runtime,
            runtime_version=runtime_version,
            runtime_eol=runtime_eol,
            base_image=base_image,
        )


register_parser(DockerfileParser())
