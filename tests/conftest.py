"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from buildrig.core.config.parameters import ParameterResolver
from buildrig.core.context import BuildContext
from buildrig.core.services.repository import RepositoryState


@pytest.fixture
def write_build(tmp_path: Path):
    """Write a dedented build.yml into tmp_path and return its path."""

    def _write(content: str) -> Path:
        path = tmp_path / "build.yml"
        path.write_text(textwrap.dedent(content))
        return path

    return _write


@pytest.fixture
def make_context(tmp_path: Path):
    """Build a BuildContext with explicit parameters and a fake repository."""

    def _make(
        arguments: dict | None = None,
        repository: RepositoryState | None = None,
        toolchain=None,
        environ: dict | None = None,
    ) -> BuildContext:
        snapshot = ParameterResolver(
            arguments=arguments or {},
            environ=environ or {},
        ).snapshot()
        repo = repository or RepositoryState(available=True, branch="main", clean=True)
        return BuildContext(
            root=tmp_path,
            parameters=snapshot,
            toolchain=toolchain,
            repository_probe=lambda root: repo,
        )

    return _make
