"""Shared fixtures for depsentinel tests (no network, no services required)."""

import zipfile

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_zip(tmp_path):
    """Factory: write ``{path: text}`` into a zip under an optional top-level dir."""

    def _make(files: dict[str, str], *, name: str = "repo.zip", top: str | None = "repo-main") -> str:
        archive = tmp_path / name
        with zipfile.ZipFile(archive, "w") as zf:
            for path, text in files.items():
                zf.writestr(f"{top}/{path}" if top else path, text)
        return str(archive)

    return _make
