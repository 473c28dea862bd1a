"""
Preconditions — named boolean predicates checked before a target runs.

Each predicate carries a readable name; that name is what a
PreconditionNotMet error reports. Predicates read only the build
context (parameter snapshot, configuration, repository state).
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from typing import Callable

from buildrig.core.config.parameters import Configuration
from buildrig.core.context import BuildContext
from buildrig.core.errors import MissingRequiredParameter, PreconditionNotMet
from buildrig.core.models.build import PreconditionDecl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Precondition:
    """A named predicate over the build context.

    ``parameter`` is set for "parameter is present" checks so that a
    failure surfaces as MissingRequiredParameter.
    """

    name: str
    check: Callable[[BuildContext], bool]
    parameter: str | None = None

    def verify(self, context: BuildContext) -> None:
        """Raise PreconditionNotMet (or MissingRequiredParameter) if false."""
        try:
            ok = bool(self.check(context))
        except Exception as e:
            logger.debug("Precondition '%s' raised: %s", self.name, e)
            raise PreconditionNotMet(self.name, f"Precondition not met: {self.name} ({e})") from e

        if ok:
            return
        if self.parameter is not None:
            raise MissingRequiredParameter(self.parameter, self.name)
        raise PreconditionNotMet(self.name)


# ── Factories ───────────────────────────────────────────────────────


def parameter_present(name: str) -> Precondition:
    return Precondition(
        name=f"parameter '{name}' is set",
        check=lambda ctx: bool(ctx.parameters.value(name)),
        parameter=name,
    )


def clean_working_tree() -> Precondition:
    return Precondition(
        name="working tree is clean",
        check=lambda ctx: ctx.repository.available and ctx.repository.clean,
    )


def branch_matches(patterns: list[str]) -> Precondition:
    """Current branch matches any pattern (case-insensitive glob)."""
    lowered = [p.lower() for p in patterns]

    def _check(ctx: BuildContext) -> bool:
        repo = ctx.repository
        if not repo.available:
            return False
        branch = repo.branch.lower()
        return any(fnmatch.fnmatchcase(branch, p) for p in lowered)

    return Precondition(
        name="branch matches one of {" + ", ".join(patterns) + "}",
        check=_check,
    )


def configuration_is(value: str) -> Precondition:
    expected = Configuration.parse(value)
    return Precondition(
        name=f"configuration is {expected.value}",
        check=lambda ctx: ctx.configuration == expected,
    )


def from_decl(decl: PreconditionDecl) -> Precondition:
    """Build a predicate from its build-file declaration."""
    if decl.parameter is not None:
        return parameter_present(decl.parameter)
    if decl.clean_working_tree is not None:
        if decl.clean_working_tree:
            return clean_working_tree()
        return Precondition(name="working tree may be dirty", check=lambda ctx: True)
    if decl.branch is not None:
        return branch_matches(decl.branch)
    if decl.configuration is not None:
        return configuration_is(decl.configuration)
    raise ValueError("empty precondition declaration")
