"""
Fan-out matrix — expand a target into one invocation per combination.

Axes are expanded lazily, when the target starts running, so glob
axes see artifacts that earlier targets produced. The product keeps
axis declaration order and value order.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from buildrig.core.models.target import AxisSource

logger = logging.getLogger(__name__)


class MatrixError(ValueError):
    """A fan-out axis could not be expanded."""

    def __init__(self, axis: str, message: str):
        self.axis = axis
        super().__init__(message)


class EmptyAxisError(MatrixError):
    """A fan-out axis expanded to no values."""

    def __init__(self, axis: str):
        super().__init__(axis, f"fan-out axis '{axis}' is empty")


@dataclass(frozen=True)
class FanOutMatrix:
    """Resolved axes of one target."""

    axes: tuple[tuple[str, tuple[str, ...]], ...] = ()

    @property
    def size(self) -> int:
        if not self.axes:
            return 0
        total = 1
        for _, values in self.axes:
            total *= len(values)
        return total

    def combinations(self) -> list[dict[str, str]]:
        """Every combination as an axis → value mapping."""
        if not self.axes:
            return []
        names = [name for name, _ in self.axes]
        value_lists = [values for _, values in self.axes]
        return [dict(zip(names, combo)) for combo in itertools.product(*value_lists)]


def expand_axis(source: AxisSource, root: Path, axis: str = "") -> tuple[str, ...]:
    """Literal values, or files matching the glob (sorted, root-relative).

    Raises:
        MatrixError: The glob pattern cannot be evaluated under *root*.
    """
    if source.glob is None:
        return source.values
    try:
        matches = sorted(p for p in root.glob(source.glob) if p.is_file())
    except (ValueError, NotImplementedError, OSError) as e:
        raise MatrixError(axis, f"fan-out axis '{axis}' glob '{source.glob}' is invalid: {e}") from e
    return tuple(str(p.relative_to(root)) for p in matches)


def build_matrix(
    matrix: Mapping[str, AxisSource],
    root: Path,
    allow_empty: bool = False,
) -> FanOutMatrix:
    """Resolve every axis of a target.

    Raises:
        EmptyAxisError: If an axis has no values and *allow_empty* is False.
        MatrixError: If a glob axis cannot be evaluated.
    """
    axes: list[tuple[str, tuple[str, ...]]] = []
    for name, source in matrix.items():
        values = expand_axis(source, root, name)
        if not values and not allow_empty:
            raise EmptyAxisError(name)
        axes.append((name, values))
    resolved = FanOutMatrix(axes=tuple(axes))
    logger.debug(
        "Matrix %s → %d combination(s)",
        " × ".join(f"{n}[{len(v)}]" for n, v in resolved.axes),
        resolved.size,
    )
    return resolved
