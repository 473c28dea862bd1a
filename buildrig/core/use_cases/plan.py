"""
Plan use cases — inspect the target graph without running anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildrig.core.config.loader import ConfigError, find_build_file, load_graph
from buildrig.core.engine.planner import ExecutionPlan, plan_execution, validate_graph
from buildrig.core.errors import BuildError
from buildrig.core.models.build import BuildFile
from buildrig.core.models.target import Target, TargetGraph
from buildrig.core.use_cases.run import EXIT_CONFIG, EXIT_OK


def describe_target(target: Target) -> dict[str, Any]:
    """Plain-data view of a target for JSON output."""
    return {
        "name": target.name,
        "description": target.description,
        "depends_on": list(target.depends_on),
        "before": list(target.before),
        "after": list(target.after),
        "requires": [p.name for p in target.requires],
        "adapter": target.action.adapter if target.action else None,
        "matrix": {
            axis: ({"glob": src.glob} if src.glob is not None else list(src.values))
            for axis, src in target.matrix.items()
        },
        "policy": target.policy.value,
        "parallelism": target.parallelism,
        "load_bearing": target.load_bearing,
    }


@dataclass
class PlanResult:
    """Execution order for the requested targets."""

    plan: ExecutionPlan | None = None
    build: BuildFile | None = None
    graph: TargetGraph | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    exit_code: int = EXIT_OK

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "build_name": self.build.name if self.build else None,
            "default": self.graph.default if self.graph else None,
            "plan": [describe_target(t) for t in self.plan.targets] if self.plan else [],
        }


def _load(result: PlanResult, config_path: Path | None) -> bool:
    try:
        if config_path is None:
            config_path = find_build_file()
        if config_path is None:
            result.errors.append("No build.yml found.")
            result.exit_code = EXIT_CONFIG
            return False
        result.config_path = config_path
        result.build, result.graph = load_graph(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        result.exit_code = EXIT_CONFIG
        return False
    return True


def show_plan(targets: list[str] | None = None, config_path: Path | None = None) -> PlanResult:
    """Validate the graph and compute the execution order.

    Args:
        targets: Target names to plan (default target when empty).
        config_path: Optional explicit path to build.yml.
    """
    result = PlanResult()
    if not _load(result, config_path):
        return result

    assert result.graph is not None
    try:
        result.plan = plan_execution(result.graph, targets)
    except BuildError as e:
        result.errors.append(str(e))
        result.exit_code = EXIT_CONFIG
    return result


def list_targets(config_path: Path | None = None) -> PlanResult:
    """Load every declared target, validating the whole graph."""
    result = PlanResult()
    if not _load(result, config_path):
        return result

    assert result.graph is not None
    try:
        result.plan = validate_graph(result.graph)
    except BuildError as e:
        result.errors.append(str(e))
        result.exit_code = EXIT_CONFIG
    return result
