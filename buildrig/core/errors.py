"""
Error taxonomy — every failure class the orchestrator can surface.

Fatal errors abort the whole run before (or instead of) execution:
    ToolchainBootstrapFailure, CycleDetected, UnknownTarget, ParameterError

Scoped errors are recorded against one target and only propagate by
marking its dependents skipped:
    PreconditionNotMet, MissingRequiredParameter, ActionFailure, RunHalted

DeadlineExceeded is run-level but never force-terminates running work.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from buildrig.core.models.action import Receipt


class BuildError(Exception):
    """Base class for all orchestration errors."""

    fatal: bool = False


# ── Fatal ───────────────────────────────────────────────────────────


class ToolchainBootstrapFailure(BuildError):
    """The runtime could not be found, downloaded or installed."""

    fatal = True


class CycleDetected(BuildError):
    """The dependency graph (with ordering hints) contains a cycle."""

    fatal = True

    def __init__(self, names: Sequence[str]):
        self.names = list(names)
        super().__init__(
            "Cycle detected between targets: " + " -> ".join(self.names)
        )


class UnknownTarget(BuildError):
    """A requested or referenced target is not declared."""

    fatal = True

    def __init__(self, name: str, referenced_by: str | None = None):
        self.name = name
        self.referenced_by = referenced_by
        if referenced_by:
            message = f"Target '{referenced_by}' references unknown target '{name}'"
        else:
            message = f"Unknown target '{name}'"
        super().__init__(message)


class ParameterError(BuildError):
    """A parameter value could not be parsed (e.g. bad configuration)."""

    fatal = True


# ── Scoped to a target ──────────────────────────────────────────────


class PreconditionNotMet(BuildError):
    """A named precondition predicate evaluated to false."""

    def __init__(self, predicate: str, message: str | None = None):
        self.predicate = predicate
        super().__init__(message or f"Precondition not met: {predicate}")


class MissingRequiredParameter(PreconditionNotMet):
    """A required parameter resolved to an empty or absent value."""

    def __init__(self, parameter: str, predicate: str | None = None):
        self.parameter = parameter
        super().__init__(
            predicate or f"parameter '{parameter}' is set",
            f"Missing required parameter '{parameter}'",
        )


class ActionFailure(BuildError):
    """One or more action invocations of a target reported failure."""

    def __init__(self, target: str, failures: Sequence[Receipt], message: str | None = None):
        self.target = target
        self.failures = list(failures)
        if message is None:
            ids = ", ".join(r.action_id for r in self.failures)
            message = f"{len(self.failures)} invocation(s) of '{target}' failed: {ids}"
        super().__init__(message)


class DeadlineExceeded(BuildError):
    """The run-level deadline passed before all work was dispatched."""

    def __init__(self, deadline: float):
        self.deadline = deadline
        super().__init__(f"Run deadline of {deadline:g}s exceeded")


class RunHalted(BuildError):
    """A target was cut short because another failure halted the run.

    The halting failure decides the exit code, never this one.
    """

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Target '{target}' was cut short: run halted ({reason})")
