"""
Run use case — build the requested targets.

This is the top-level orchestrator: it loads build.yml, plans the
requested targets, resolves parameters, bootstraps the toolchain,
executes the plan and maps the outcome onto a process exit code.
The full vertical slice from user intent to a finished build.

Exit codes:
    0  every target in the plan succeeded
    1  a load-bearing target failed while executing its action
    3  a load-bearing target's precondition was not met (nothing was done)
    4  configuration error (build file, unknown target, cycle, parameter)
    5  toolchain bootstrap failure
    6  run deadline exceeded
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from buildrig.adapters.mock import MockAdapter
from buildrig.adapters.registry import AdapterRegistry, default_registry
from buildrig.core.config.loader import (
    ConfigError,
    build_root,
    find_build_file,
    load_graph,
)
from buildrig.core.config.manifest import Manifest
from buildrig.core.config.parameters import (
    CONFIGURATION,
    ParameterResolver,
    ParameterSnapshot,
)
from buildrig.core.context import BuildContext
from buildrig.core.engine.executor import (
    ExecutionReport,
    ProgressCallback,
    TargetGraphExecutor,
)
from buildrig.core.engine.planner import ExecutionPlan, plan_execution
from buildrig.core.errors import (
    ActionFailure,
    BuildError,
    DeadlineExceeded,
    PreconditionNotMet,
    RunHalted,
    ToolchainBootstrapFailure,
)
from buildrig.core.models.build import BuildFile
from buildrig.core.models.target import TargetState
from buildrig.core.observability.logging_config import install_secret_filter, redact
from buildrig.core.toolchain.bootstrap import Toolchain, ToolchainBootstrapResolver

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PRECONDITION = 3
EXIT_CONFIG = 4
EXIT_TOOLCHAIN = 5
EXIT_DEADLINE = 6

DEFAULT_MANIFEST = "global.json"


@dataclass
class RunResult:
    """Result of a build run."""

    report: ExecutionReport | None = None
    plan: ExecutionPlan | None = None
    build: BuildFile | None = None
    root: Path | None = None
    parameters: ParameterSnapshot | None = None
    toolchain: Toolchain | None = None
    error: str | None = None
    error_type: str | None = None
    exit_code: int = EXIT_OK

    def fail(self, error: BuildError | str, exit_code: int) -> RunResult:
        self.error = str(error)
        self.error_type = type(error).__name__ if isinstance(error, BuildError) else None
        self.exit_code = exit_code
        return self

    @property
    def secrets(self) -> list[str]:
        """Values of secret parameters resolved for this run."""
        if self.parameters is None:
            return []
        return [p.value for p in self.parameters.values() if p.secret and p.value]

    def redact(self, value: Any) -> Any:
        """Mask secret parameter values anywhere inside *value*."""
        return redact(value, self.secrets)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        if self.build is not None:
            result["build_name"] = self.build.name
        if self.root is not None:
            result["root"] = str(self.root)
        if self.plan is not None:
            result["plan"] = self.plan.names
        if self.parameters is not None:
            result["parameters"] = self.parameters.to_dict()
        if self.toolchain is not None:
            result["toolchain"] = {
                "executable": str(self.toolchain.executable),
                "source": self.toolchain.source,
            }
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return self.redact(result)


def exit_code_for(report: ExecutionReport) -> int:
    """Map an execution report onto a process exit code.

    Failures of targets marked ``load_bearing: false`` never affect it,
    nor do targets that were only cut short by another failure.
    """
    failed = [
        o for o in report.outcomes.values()
        if o.state is TargetState.FAILED and o.load_bearing and not isinstance(o.error, RunHalted)
    ]
    if any(isinstance(o.error, ActionFailure) for o in failed):
        return EXIT_FAILED
    if isinstance(report.error, DeadlineExceeded):
        return EXIT_DEADLINE
    if any(isinstance(o.error, PreconditionNotMet) for o in failed):
        return EXIT_PRECONDITION
    if failed:
        return EXIT_FAILED
    return EXIT_OK


def resolve_parameters(
    build: BuildFile,
    root: Path,
    arguments: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ParameterSnapshot:
    """Resolve every declared parameter once for this run."""
    manifest_name = build.toolchain.manifest if build.toolchain else DEFAULT_MANIFEST
    resolver = ParameterResolver(
        declarations=build.parameters,
        arguments=arguments,
        environ=environ,
        manifest=Manifest(root / manifest_name),
    )
    return resolver.snapshot()


def mock_registry(build: BuildFile) -> AdapterRegistry:
    """A registry answering every adapter the build file uses with a mock."""
    registry = AdapterRegistry()
    names = {t.action.adapter for t in build.targets.values() if t.action is not None}
    for name in sorted(names):
        registry.register(MockAdapter(adapter_name=name, default_output=f"[mock] {name}"))
    return registry


def run_build(
    targets: list[str] | None = None,
    config_path: Path | None = None,
    arguments: Mapping[str, str] | None = None,
    configuration: str | None = None,
    parallelism: int | None = None,
    deadline: float | None = None,
    dry_run: bool = False,
    bootstrap: bool = True,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    environ: Mapping[str, str] | None = None,
    resolver_factory: type[ToolchainBootstrapResolver] = ToolchainBootstrapResolver,
    on_progress: ProgressCallback | None = None,
) -> RunResult:
    """Build the requested targets (default target when none given).

    Args:
        targets: Target names to build.
        config_path: Optional explicit path to build.yml.
        arguments: Invocation-time parameter values.
        configuration: Shorthand for the ``configuration`` parameter.
        parallelism: Override the build file's maximum in-flight count.
        deadline: Run-level deadline in seconds.
        dry_run: Walk the graph and validate actions without running them.
        bootstrap: If False, never download or install a toolchain.
        mock_mode: Replace every adapter with a MockAdapter.
        registry: Optional pre-configured adapter registry.
        environ: Environment to resolve parameters from (default: os.environ).
        resolver_factory: Toolchain resolver class (injectable for tests).
        on_progress: Called on every target state transition.

    Returns:
        RunResult carrying the report and the process exit code.
    """
    result = RunResult()
    environ = os.environ if environ is None else environ

    # ── Load build file ──────────────────────────────────────────
    try:
        if config_path is None:
            config_path = find_build_file()
        if config_path is None:
            return result.fail(ConfigError("No build.yml found."), EXIT_CONFIG)
        build, graph = load_graph(config_path)
    except ConfigError as e:
        return result.fail(e, EXIT_CONFIG)

    root = build_root(config_path)
    result.build = build
    result.root = root

    # ── Plan ─────────────────────────────────────────────────────
    # Graph errors surface before any toolchain download
    try:
        plan = plan_execution(graph, targets)
    except BuildError as e:
        return result.fail(e, EXIT_CONFIG)
    result.plan = plan

    # ── Parameters ───────────────────────────────────────────────
    args = dict(arguments or {})
    if configuration:
        args[CONFIGURATION] = configuration
    try:
        parameters = resolve_parameters(build, root, args, environ)
    except BuildError as e:
        return result.fail(e, EXIT_CONFIG)
    result.parameters = parameters

    if result.secrets:
        install_secret_filter(result.secrets)

    # ── Toolchain ────────────────────────────────────────────────
    toolchain: Toolchain | None = None
    if build.toolchain is not None:
        resolver = resolver_factory(build.toolchain, root, environ=environ)
        try:
            if bootstrap:
                toolchain = resolver.resolve()
            else:
                toolchain = resolver.find_system() or resolver.find_cached(resolver.resolve_spec())
                if toolchain is None:
                    logger.warning("No usable toolchain found and bootstrapping is disabled")
        except ToolchainBootstrapFailure as e:
            return result.fail(e, EXIT_TOOLCHAIN)
    result.toolchain = toolchain

    # ── Execute ──────────────────────────────────────────────────
    if registry is None:
        registry = mock_registry(build) if mock_mode else default_registry()

    context = BuildContext(
        root=root,
        parameters=parameters,
        toolchain=toolchain,
        env=build.toolchain.env if build.toolchain else None,
    )
    executor = TargetGraphExecutor(
        plan,
        registry,
        context,
        max_parallelism=parallelism or build.parallelism,
        deadline=deadline,
        dry_run=dry_run,
        on_progress=on_progress,
    )
    report = executor.run()
    result.report = report
    result.exit_code = exit_code_for(report)
    if report.error is not None:
        result.error = str(report.error)
        result.error_type = type(report.error).__name__
    return result
