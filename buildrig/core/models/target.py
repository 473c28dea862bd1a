"""
Target graph value objects.

A Target is plain data: identity, edges, preconditions, and a reference
to the action it runs. It holds no builder state and no callbacks other
than its precondition predicates. The graph keeps declaration order,
which the planner uses to break ties.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Mapping

if TYPE_CHECKING:
    from buildrig.core.engine.preconditions import Precondition


class FailurePolicy(str, Enum):
    """What a batch of invocations does when one of them fails."""

    FAIL_FAST = "fail-fast"
    COMPLETE_ON_FAILURE = "complete-on-failure"


class TargetState(str, Enum):
    """Lifecycle of a target inside one run."""

    PENDING = "pending"
    PRECONDITION_CHECKING = "precondition_checking"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (TargetState.SUCCEEDED, TargetState.FAILED, TargetState.SKIPPED)


@dataclass(frozen=True)
class ActionRef:
    """Adapter name plus parameter templates."""

    adapter: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AxisSource:
    """Values of one fan-out axis: a literal list or a glob."""

    values: tuple[str, ...] = ()
    glob: str | None = None


@dataclass(frozen=True)
class Target:
    """A named unit of orchestrated work."""

    name: str
    depends_on: tuple[str, ...] = ()
    before: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    requires: tuple[Precondition, ...] = ()
    action: ActionRef | None = None
    matrix: Mapping[str, AxisSource] = field(default_factory=dict)
    policy: FailurePolicy = FailurePolicy.FAIL_FAST
    parallelism: int | None = None
    load_bearing: bool = True
    allow_empty_matrix: bool = False
    description: str = ""

    @property
    def fans_out(self) -> bool:
        return bool(self.matrix)


class TargetGraph:
    """Ordered collection of targets with a designated default."""

    def __init__(self, targets: list[Target] | None = None, default: str | None = None):
        self._targets: dict[str, Target] = {}
        for target in targets or []:
            self.add(target)
        self.default = default

    def add(self, target: Target) -> None:
        if target.name in self._targets:
            raise ValueError(f"Duplicate target name: {target.name}")
        self._targets[target.name] = target

    def get(self, name: str) -> Target | None:
        return self._targets.get(name)

    def names(self) -> list[str]:
        """Target names in declaration order."""
        return list(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)
