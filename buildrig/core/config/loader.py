"""
Configuration loader — reads build.yml into a target graph.

This is the primary entry point for loading build configuration.
It reads YAML, validates against Pydantic schemas, and converts the
result into frozen Target value objects.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from buildrig.core.engine.preconditions import from_decl
from buildrig.core.errors import BuildError
from buildrig.core.models.build import BuildFile, GlobAxis, TargetDecl
from buildrig.core.models.target import (
    ActionRef,
    AxisSource,
    FailurePolicy,
    Target,
    TargetGraph,
)

logger = logging.getLogger(__name__)

# Default config filename
BUILD_CONFIG_FILE = "build.yml"


class ConfigError(BuildError):
    """Raised when build configuration is invalid or missing."""

    fatal = True


def find_build_file(start_dir: Path | None = None) -> Path | None:
    """Search for build.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to build.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / BUILD_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_build_file(path: Path | None = None) -> BuildFile:
    """Load and validate build configuration.

    Args:
        path: Explicit path to build.yml. If None, searches upward.

    Returns:
        Validated BuildFile model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_build_file()

    if path is None:
        raise ConfigError(f"No {BUILD_CONFIG_FILE} found. Specify one with --config.")

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading build config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        build = BuildFile.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid build configuration: {e}") from e

    logger.info("Loaded build '%s' with %d targets", build.name or path.parent.name, len(build.targets))
    return build


def _to_target(name: str, decl: TargetDecl) -> Target:
    matrix: dict[str, AxisSource] = {}
    for axis, source in decl.matrix.items():
        if isinstance(source, GlobAxis):
            matrix[axis] = AxisSource(glob=source.glob)
        else:
            matrix[axis] = AxisSource(values=tuple(source))

    action = None
    if decl.action is not None:
        action = ActionRef(adapter=decl.action.adapter, params=dict(decl.action.params))

    try:
        requires = tuple(from_decl(p) for p in decl.requires)
    except BuildError as e:
        raise ConfigError(f"Target '{name}': {e}") from e

    return Target(
        name=name,
        depends_on=tuple(decl.depends_on),
        before=tuple(decl.before),
        after=tuple(decl.after),
        requires=requires,
        action=action,
        matrix=matrix,
        policy=FailurePolicy(decl.policy),
        parallelism=decl.parallelism,
        load_bearing=decl.load_bearing,
        allow_empty_matrix=decl.allow_empty_matrix,
        description=decl.description,
    )


def build_graph(build: BuildFile) -> TargetGraph:
    """Convert a validated build file into a target graph.

    Raises:
        ConfigError: If an edge or the default names an unknown target.
    """
    graph = TargetGraph(default=build.default)
    for name, decl in build.targets.items():
        graph.add(_to_target(name, decl))

    for target in graph:
        for kind, names in (
            ("depends on", target.depends_on),
            ("runs before", target.before),
            ("runs after", target.after),
        ):
            for ref in names:
                if ref not in graph:
                    raise ConfigError(f"Target '{target.name}' {kind} unknown target '{ref}'")

    if build.default is not None and build.default not in graph:
        raise ConfigError(f"Default target '{build.default}' is not declared")

    return graph


def load_graph(path: Path | None = None) -> tuple[BuildFile, TargetGraph]:
    """Load build.yml and build its target graph in one step."""
    build = load_build_file(path)
    return build, build_graph(build)


def build_root(config_path: Path) -> Path:
    """Get the build root directory from a config file path."""
    return config_path.parent.resolve()
