"""Toolchain bootstrap — system probe, pinned spec, private install."""

from buildrig.core.toolchain.bootstrap import (
    Toolchain,
    ToolchainBootstrapResolver,
    ToolchainSpec,
)

__all__ = ["Toolchain", "ToolchainBootstrapResolver", "ToolchainSpec"]
