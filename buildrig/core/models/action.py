"""
Action and Receipt models — the invocation contract.

An Action is one concrete invocation of a target's action reference:
a single call for plain targets, one per combination for fan-out
targets. A Receipt is its outcome. Adapters receive Actions and
return Receipts. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """One invocation dispatched by the executor.

    ``params`` are already rendered: placeholders from the parameter
    snapshot, the toolchain path and the fan-out combination have been
    substituted by the time an adapter sees them.
    """

    id: str                          # "<target>" or "<target>[axis=value,...]"
    adapter: str                     # which adapter handles this
    target: str = ""                 # owning target name
    params: dict[str, Any] = Field(default_factory=dict)
    combination: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def invocation_id(cls, target: str, combination: dict[str, str]) -> str:
        """Stable id for a target invocation."""
        if not combination:
            return target
        inner = ",".join(f"{k}={v}" for k, v in combination.items())
        return f"{target}[{inner}]"


class Receipt(BaseModel):
    """Result of one action invocation.

    ``skipped`` marks invocations that were never dispatched (fail-fast
    halt, deadline, dry run). Adapters themselves only report ok or
    failed.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    combination: dict[str, str] = Field(default_factory=dict)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the invocation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the invocation failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a receipt for an invocation that was never run."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )
