"""Denylist of risky coordinates and runtime end-of-life heuristics."""

from __future__ import annotations

import re

# (substrings matched against group/artifact/package name, reason)
FLAGGED_COORDINATES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("org.apache.axis2", "axis2"),
        "Apache Axis2 - Legacy SOAP framework with known security issues",
    ),
    (
        ("chemaxon", "jchem"),
        "ChemAxon - Commercial chemical informatics library",
    ),
)

JAVA_LTS_VERSIONS = frozenset({8, 11, 17, 21, 25})
# First non-LTS Java release that is still supported
JAVA_CURRENT_VERSION = 25

NODE_OLDEST_SUPPORTED = 22
NODE_CURRENT_VERSION = 25

_MAJOR_RE = re.compile(r"(\d+)")


def flag_reason(*coordinates: str | None) -> str | None:
    """Return the denylist reason if any coordinate part matches, else None."""
    parts = [c.lower() for c in coordinates if c]
    for needles, reason in FLAGGED_COORDINATES:
        if any(needle in part for needle in needles for part in parts):
            return reason
    return None


def major_version(version: str | None, *, java: bool = False) -> int | None:
    """Extract the major version number; with *java*, ``1.8`` means 8."""
    if not version:
        return None
    cleaned = version.strip().lstrip("vV")
    if java and cleaned.startswith("1.") and len(cleaned) > 2:
        cleaned = cleaned[2:]
    m = _MAJOR_RE.match(cleaned)
    return int(m.group(1)) if m else None


def is_java_eol(version: str | None) -> bool:
    major = major_version(version, java=True)
    if major is None:
        return False
    if major in JAVA_LTS_VERSIONS:
        return False
    return major < JAVA_CURRENT_VERSION


def is_node_eol(version: str | None) -> bool:
    major = major_version(version)
    if major is None:
        return False
    if major < NODE_OLDEST_SUPPORTED:
        return True
    return major % 2 == 1 and major < NODE_CURRENT_VERSION
