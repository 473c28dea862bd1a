"""
Toolchain use case — resolve (and if needed install) the build runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from buildrig.core.config.loader import ConfigError, build_root, find_build_file, load_build_file
from buildrig.core.errors import ToolchainBootstrapFailure
from buildrig.core.toolchain.bootstrap import Toolchain, ToolchainBootstrapResolver
from buildrig.core.use_cases.run import EXIT_CONFIG, EXIT_OK, EXIT_TOOLCHAIN

logger = logging.getLogger(__name__)


@dataclass
class ToolchainResult:
    """Outcome of toolchain resolution."""

    toolchain: Toolchain | None = None
    install_dir: Path | None = None
    error: str | None = None
    exit_code: int = EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error, "exit_code": self.exit_code}
        result: dict[str, Any] = {
            "install_dir": str(self.install_dir) if self.install_dir else None,
            "exit_code": self.exit_code,
        }
        if self.toolchain is not None:
            result["executable"] = str(self.toolchain.executable)
            result["source"] = self.toolchain.source
            result["spec"] = str(self.toolchain.spec) if self.toolchain.spec else None
        return result


def resolve_toolchain(
    config_path: Path | None = None,
    install: bool = True,
    environ: Mapping[str, str] | None = None,
    resolver_factory: type[ToolchainBootstrapResolver] = ToolchainBootstrapResolver,
) -> ToolchainResult:
    """Find the runtime for this build, installing it privately if allowed.

    Args:
        config_path: Optional explicit path to build.yml.
        install: If False, only report a system or cached runtime.
        environ: Environment for probes and the install routine.
        resolver_factory: Resolver class (injectable for tests).
    """
    result = ToolchainResult()

    try:
        if config_path is None:
            config_path = find_build_file()
        if config_path is None:
            result.error = "No build.yml found."
            result.exit_code = EXIT_CONFIG
            return result
        build = load_build_file(config_path)
    except ConfigError as e:
        result.error = str(e)
        result.exit_code = EXIT_CONFIG
        return result

    if build.toolchain is None:
        result.error = "build.yml declares no toolchain."
        result.exit_code = EXIT_CONFIG
        return result

    resolver = resolver_factory(build.toolchain, build_root(config_path), environ=environ)
    result.install_dir = resolver.install_dir

    try:
        if install:
            result.toolchain = resolver.resolve()
        else:
            result.toolchain = resolver.find_system() or resolver.find_cached(resolver.resolve_spec())
    except ToolchainBootstrapFailure as e:
        result.error = str(e)
        result.exit_code = EXIT_TOOLCHAIN
        return result

    if result.toolchain is None:
        logger.info("No system or cached toolchain for %s", build.toolchain.command)
    return result
