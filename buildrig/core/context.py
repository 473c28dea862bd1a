"""
Build context — the read-only world every target and action sees.

Created once per run after parameters are resolved and the toolchain
is bootstrapped, then passed explicitly into the executor and from
there into every adapter call. Nothing here is module-level state.

Design notes:
    - Parameters and toolchain are immutable after construction, so
      worker threads read them without locking.
    - Repository state is probed lazily (only preconditions need it)
      and at most once; the probe is guarded by a lock.
"""

from __future__ import annotations

import threading
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping

from buildrig.core.config.parameters import Configuration, ParameterSnapshot
from buildrig.core.services.repository import RepositoryState, probe_repository

if TYPE_CHECKING:
    from buildrig.core.toolchain.bootstrap import Toolchain


class BuildContext:
    """Everything resolved before execution starts."""

    def __init__(
        self,
        root: Path,
        parameters: ParameterSnapshot,
        toolchain: Toolchain | None = None,
        env: Mapping[str, str] | None = None,
        repository_probe: Callable[[Path], RepositoryState] = probe_repository,
    ):
        self._root = root
        self._parameters = parameters
        self._toolchain = toolchain
        self._env = MappingProxyType(dict(env or {}))
        self._probe = repository_probe
        self._repository: RepositoryState | None = None
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def parameters(self) -> ParameterSnapshot:
        return self._parameters

    @property
    def toolchain(self) -> Toolchain | None:
        return self._toolchain

    @property
    def env(self) -> Mapping[str, str]:
        """Extra environment variables for spawned processes."""
        return self._env

    @property
    def configuration(self) -> Configuration:
        return self._parameters.configuration

    @property
    def repository(self) -> RepositoryState:
        with self._lock:
            if self._repository is None:
                self._repository = self._probe(self._root)
            return self._repository

    def template_values(self) -> dict[str, str]:
        """Placeholders available to action parameter templates."""
        values = self._parameters.template_values()
        values["root"] = str(self._root)
        values["toolchain"] = str(self._toolchain.executable) if self._toolchain else ""
        return values
