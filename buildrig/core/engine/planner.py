"""
Planner — validated, topologically ordered execution plans.

Selection pulls in the requested targets and everything they
transitively depend on. Ordering hints (``before`` / ``after``) add
edges only between targets that are both selected; they never pull
a target in. Kahn's algorithm orders the result, breaking ties by
declaration order so the same graph always yields the same plan.
Cycles are rejected before anything runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from buildrig.core.errors import CycleDetected, UnknownTarget
from buildrig.core.models.target import Target, TargetGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionPlan:
    """Targets in execution order. Immutable once computed."""

    targets: tuple[Target, ...] = ()
    requested: tuple[str, ...] = ()

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.targets]

    def get(self, name: str) -> Target | None:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def __len__(self) -> int:
        return len(self.targets)


def select_targets(graph: TargetGraph, requested: list[str]) -> set[str]:
    """Requested targets plus their transitive dependencies."""
    selected: set[str] = set()
    stack = list(requested)
    while stack:
        name = stack.pop()
        if name in selected:
            continue
        target = graph.get(name)
        if target is None:
            raise UnknownTarget(name)
        selected.add(name)
        for dep in target.depends_on:
            if dep not in graph:
                raise UnknownTarget(dep, referenced_by=name)
            stack.append(dep)
    return selected


def ordering_edges(graph: TargetGraph, selected: set[str]) -> dict[str, set[str]]:
    """Map each selected target to the selected targets that must precede it."""
    preds: dict[str, set[str]] = {name: set() for name in selected}
    for name in selected:
        target = graph.get(name)
        assert target is not None
        for dep in target.depends_on:
            preds[name].add(dep)
        for other in target.after:
            if other in selected:
                preds[name].add(other)
        for other in target.before:
            if other in selected:
                preds[other].add(name)
    return preds


def _find_cycle(preds: dict[str, set[str]], remaining: list[str]) -> list[str]:
    """Return one cycle (first node repeated at the end) among *remaining*."""
    pending = set(remaining)
    visiting: list[str] = []
    on_path: set[str] = set()
    done: set[str] = set()

    def visit(node: str) -> list[str] | None:
        visiting.append(node)
        on_path.add(node)
        for prev in sorted(preds[node] & pending, key=remaining.index):
            if prev in on_path:
                start = visiting.index(prev)
                return visiting[start:] + [prev]
            if prev not in done:
                found = visit(prev)
                if found:
                    return found
        on_path.discard(node)
        visiting.pop()
        done.add(node)
        return None

    for node in remaining:
        if node not in done:
            found = visit(node)
            if found:
                # edges point at predecessors; report in execution direction
                return list(reversed(found))
    return list(remaining)


def plan_execution(graph: TargetGraph, requested: list[str] | None = None) -> ExecutionPlan:
    """Validate the graph and produce a deterministic execution order.

    Args:
        graph: The declared target graph.
        requested: Target names to build. Defaults to the graph's default
            target, or every target when no default is declared.

    Returns:
        ExecutionPlan in topological order.

    Raises:
        UnknownTarget: A requested target or dependency is not declared.
        CycleDetected: Dependencies plus ordering hints form a cycle.
    """
    if not requested:
        requested = [graph.default] if graph.default else graph.names()

    selected = select_targets(graph, requested)
    preds = ordering_edges(graph, selected)

    declared = [name for name in graph.names() if name in selected]
    position = {name: i for i, name in enumerate(declared)}
    in_degree = {name: len(preds[name]) for name in declared}
    succs: dict[str, list[str]] = {name: [] for name in declared}
    for name in declared:
        for prev in preds[name]:
            succs[prev].append(name)

    ready = [name for name in declared if in_degree[name] == 0]
    order: list[str] = []
    while ready:
        ready.sort(key=position.__getitem__)
        name = ready.pop(0)
        order.append(name)
        for nxt in succs[name]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                ready.append(nxt)

    if len(order) != len(declared):
        remaining = [name for name in declared if name not in set(order)]
        cycle = _find_cycle(preds, remaining)
        logger.debug("Cycle among %s", remaining)
        raise CycleDetected(cycle)

    plan = ExecutionPlan(
        targets=tuple(graph.get(name) for name in order),  # type: ignore[misc]
        requested=tuple(requested),
    )
    logger.info("Execution plan: %s", " → ".join(plan.names))
    return plan


def validate_graph(graph: TargetGraph) -> ExecutionPlan:
    """Check the whole graph for cycles and dangling references.

    Returns:
        The plan covering every declared target.
    """
    return plan_execution(graph, graph.names())
