"""End-of-life / vulnerability lookup collaborators.

The normalizer treats every answer as best-effort: ``None`` means "no data"
and is never an error.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

import httpx
import structlog

from depsentinel.engines.dependency_scanner.flags import major_version

log = structlog.get_logger("depsentinel.engine")

RUNTIME = "runtime"


@dataclass(frozen=True)
class LookupAnswer:
    eol_date: date | None = None
    eol: bool = False
    vulnerability_count: int = 0
    latest_version: str | None = None


class VulnerabilityLookup(Protocol):
    async def lookup(self, name: str, version: str, ecosystem: str) -> LookupAnswer | None: ...


class NullLookup:
    """Lookup that never has data."""

    async def lookup(self, name: str, version: str, ecosystem: str) -> LookupAnswer | None:
        return None


# (ecosystem, name) -> endoflife.date product slug
_PRODUCTS: dict[tuple[str, str], str] = {
    (RUNTIME, "node"): "nodejs",
    (RUNTIME, "java"): "eclipse-temurin",
    (RUNTIME, "python"): "python",
    (RUNTIME, "ruby"): "ruby",
    (RUNTIME, "php"): "php",
    (RUNTIME, "go"): "go",
    (RUNTIME, "perl"): "perl",
    (RUNTIME, "nginx"): "nginx",
    (RUNTIME, "alpine"): "alpine",
    (RUNTIME, "ubuntu"): "ubuntu",
    (RUNTIME, "debian"): "debian",
    ("npm", "react"): "react",
    ("npm", "vue"): "vue",
    ("npm", "jquery"): "jquery",
    ("npm", "@angular/core"): "angular",
    ("npm", "next"): "nextjs",
    ("maven", "org.springframework:spring-core"): "spring-framework",
    ("gradle", "org.springframework:spring-core"): "spring-framework",
    ("maven", "org.springframework.boot:spring-boot"): "spring-boot",
    ("gradle", "org.springframework.boot:spring-boot"): "spring-boot",
}


class EndOfLifeLookup:
    """Answers EOL questions from the public endoflife.date API.

    Release-cycle tables are fetched once per product and cached for the
    lifetime of the instance.
    """

    def __init__(
        self,
        base_url: str = "https://endoflife.date/api",
        *,
        client: httpx.AsyncClient | None = None,
        today: date | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self._today = today
        self._cycles: dict[str, list[dict[str, Any]] | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        await self._client.aclose()

    async def lookup(self, name: str, version: str, ecosystem: str) -> LookupAnswer | None:
        product = _PRODUCTS.get((ecosystem, name))
        if product is None or not version or version == "unknown":
            return None
        cycles = await self._load(product)
        if not cycles:
            return None
        entry = self._match_cycle(cycles, version)
        if entry is None:
            return None

        eol_field = entry.get("eol")
        eol_date: date | None = None
        if isinstance(eol_field, str):
            try:
                eol_date = date.fromisoformat(eol_field)
            except ValueError:
                eol_date = None
            eol = eol_date is not None and eol_date < (self._today or date.today())
        else:
            eol = bool(eol_field)
        latest = entry.get("latest")
        return LookupAnswer(
            eol_date=eol_date,
            eol=eol,
            latest_version=str(latest) if latest is not None else None,
        )

    async def _load(self, product: str) -> list[dict[str, Any]] | None:
        if product in self._cycles:
            return self._cycles[product]
        lock = self._locks.setdefault(product, asyncio.Lock())
        async with lock:
            if product in self._cycles:
                return self._cycles[product]
            try:
                resp = await self._client.get(f"/{product}.json")
                resp.raise_for_status()
                data = resp.json()
                self._cycles[product] = data if isinstance(data, list) else None
            except (httpx.HTTPError, ValueError) as exc:
                log.warning("eol_lookup.fetch_failed", product=product, error=str(exc))
                self._cycles[product] = None
        return self._cycles[product]

    @staticmethod
    def _match_cycle(cycles: list[dict[str, Any]], version: str) -> dict[str, Any] | None:
        parts = version.lstrip("vV").split(".")
        candidates = [".".join(parts[:2])] if len(parts) >= 2 else []
        major = major_version(version)
        if major is not None:
            candidates.append(str(major))
        for candidate in candidates:
            for entry in cycles:
                if str(entry.get("cycle")) == candidate:
                    return entry
        return None


def create_lookup(kind: str) -> VulnerabilityLookup:
    """Build the lookup named by ``DEPSENTINEL_EOL_LOOKUP``."""
    if kind == "endoflife":
        return EndOfLifeLookup()
    return NullLookup()
