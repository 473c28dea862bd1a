"""
Engine executor — the target graph scheduling loop.

The executor takes an ExecutionPlan and drives every target through
its lifecycle:

    pending → precondition_checking → ready → running → succeeded | failed
        └──────────────→ skipped  (a dependency failed or was skipped)

One scheduler thread (the caller of ``run``) owns every state
transition. Action invocations run on a bounded worker pool and hand
their receipts back through a queue; the scheduler only submits an
invocation when a slot is free, so work that is never dispatched can
still be withheld when a fail-fast batch stops.

Flow:
    plan → precondition check → matrix expansion → dispatch → collect receipts → report
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

from buildrig.adapters.registry import AdapterRegistry
from buildrig.core.context import BuildContext
from buildrig.core.engine.matrix import MatrixError, build_matrix
from buildrig.core.engine.planner import ExecutionPlan
from buildrig.core.errors import (
    ActionFailure,
    BuildError,
    DeadlineExceeded,
    PreconditionNotMet,
    RunHalted,
)
from buildrig.core.models.action import Action, Receipt
from buildrig.core.models.target import FailurePolicy, Target, TargetState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, TargetState], None]


# ── Report ──────────────────────────────────────────────────────────


@dataclass
class TargetOutcome:
    """What happened to one target."""

    name: str
    state: TargetState = TargetState.PENDING
    error: BuildError | None = None
    reason: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    duration_ms: int = 0
    load_bearing: bool = True

    @property
    def failures(self) -> list[Receipt]:
        return [r for r in self.receipts if r.failed]

    @property
    def successes(self) -> list[Receipt]:
        return [r for r in self.receipts if r.ok]

    @property
    def error_type(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "error_type": self.error_type,
            "error": str(self.error) if self.error is not None else None,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
            "load_bearing": self.load_bearing,
            "succeeded": len(self.successes),
            "failed": len(self.failures),
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    outcomes: dict[str, TargetOutcome] = field(default_factory=dict)
    error: BuildError | None = None
    halted_by: str | None = None
    dry_run: bool = False
    duration_ms: int = 0

    def state(self, name: str) -> TargetState:
        return self.outcomes[name].state

    def _names(self, state: TargetState) -> list[str]:
        return [n for n, o in self.outcomes.items() if o.state == state]

    @property
    def succeeded(self) -> list[str]:
        return self._names(TargetState.SUCCEEDED)

    @property
    def failed(self) -> list[str]:
        return self._names(TargetState.FAILED)

    @property
    def skipped(self) -> list[str]:
        return self._names(TargetState.SKIPPED)

    @property
    def all_ok(self) -> bool:
        return self.error is None and len(self.succeeded) == len(self.outcomes)

    @property
    def status(self) -> str:
        if self.all_ok:
            return "ok"
        if self.succeeded:
            return "partial"
        return "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "dry_run": self.dry_run,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "error": str(self.error) if self.error is not None else None,
            "halted_by": self.halted_by,
            "duration_ms": self.duration_ms,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "targets": [o.to_dict() for o in self.outcomes.values()],
        }


# ── Parameter templates ─────────────────────────────────────────────


def render_params(value: Any, values: dict[str, str]) -> Any:
    """Substitute ``{name}`` placeholders in strings, recursively.

    Raises:
        KeyError: A placeholder names an unknown value.
    """
    if isinstance(value, str):
        return value.format_map(values)
    if isinstance(value, list):
        return [render_params(v, values) for v in value]
    if isinstance(value, dict):
        return {k: render_params(v, values) for k, v in value.items()}
    return value


# ── Batches ─────────────────────────────────────────────────────────


@dataclass
class _Batch:
    """The invocations of one running target."""

    target: Target
    pending: deque[tuple[int, Action]]
    limit: int
    started: float
    receipts: list[Receipt | None] = field(default_factory=list)
    in_flight: int = 0
    halted: bool = False

    @property
    def policy(self) -> FailurePolicy:
        return self.target.policy

    @property
    def can_dispatch(self) -> bool:
        return not self.halted and bool(self.pending) and self.in_flight < self.limit

    @property
    def done(self) -> bool:
        return self.in_flight == 0 and (self.halted or not self.pending)


class TargetGraphExecutor:
    """Run an execution plan with bounded parallelism.

    Args:
        plan: Targets in topological order.
        registry: Adapter registry every invocation is dispatched through.
        context: Read-only build context shared with all actions.
        max_parallelism: Maximum invocations in flight across the run.
        deadline: Optional run-level deadline in seconds. Once passed,
            nothing new starts and fail-fast batches stop dispatching;
            running actions are never force-terminated.
        clock: Monotonic time source (injectable for tests).
        dry_run: Validate invocations without running them.
        on_progress: Called as ``(target, state)`` on every transition.
    """

    def __init__(
        self,
        plan: ExecutionPlan,
        registry: AdapterRegistry,
        context: BuildContext,
        max_parallelism: int = 4,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        dry_run: bool = False,
        on_progress: ProgressCallback | None = None,
    ):
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        self.plan = plan
        self.registry = registry
        self.context = context
        self.max_parallelism = max_parallelism
        self.deadline = deadline
        self._clock = clock
        self.dry_run = dry_run
        self._on_progress = on_progress

        self._lock = threading.Lock()
        self._completions: queue.Queue[tuple[_Batch, int, Action, Future[Receipt]]] = queue.Queue()
        self._batches: list[_Batch] = []
        self._in_flight = 0
        self._deadline_at: float | None = None
        self._halt_reason: str | None = None
        self._report = ExecutionReport(
            outcomes={
                t.name: TargetOutcome(name=t.name, load_bearing=t.load_bearing)
                for t in plan.targets
            },
            dry_run=dry_run,
        )

    # ── State table ──

    def state(self, name: str) -> TargetState:
        """Current state of a target (safe from any thread)."""
        with self._lock:
            return self._report.outcomes[name].state

    def _transition(self, name: str, state: TargetState, **changes: Any) -> None:
        with self._lock:
            outcome = self._report.outcomes[name]
            outcome.state = state
            for key, value in changes.items():
                setattr(outcome, key, value)
        logger.debug("Target %s → %s", name, state.value)
        if self._on_progress is not None:
            self._on_progress(name, state)

    # ── Run ──

    def run(self) -> ExecutionReport:
        """Execute the plan and return the report. Never raises for target failures."""
        started = self._clock()
        if self.deadline is not None:
            self._deadline_at = started + self.deadline

        logger.info(
            "Running %d target(s), parallelism %d%s",
            len(self.plan), self.max_parallelism, " (dry run)" if self.dry_run else "",
        )

        with ThreadPoolExecutor(
            max_workers=self.max_parallelism, thread_name_prefix="buildrig"
        ) as pool:
            while True:
                self._check_deadline()
                self._advance()
                # Finished targets may halt the run before more work is dispatched
                if self._sweep():
                    continue
                self._dispatch(pool)
                if self._in_flight == 0:
                    break
                self._collect()

        self._report.duration_ms = int((self._clock() - started) * 1000)
        logger.info(
            "Run finished: %d succeeded, %d failed, %d skipped",
            len(self._report.succeeded), len(self._report.failed), len(self._report.skipped),
        )
        return self._report

    # ── Halting ──

    def _halt(self, reason: str) -> None:
        """Stop starting targets and stop fail-fast batches from dispatching."""
        if self._halt_reason is None:
            self._halt_reason = reason
            logger.warning("Halting run: %s", reason)
        for batch in self._batches:
            if batch.policy is FailurePolicy.FAIL_FAST:
                batch.halted = True

    def _check_deadline(self) -> None:
        if self._deadline_at is None or self._report.error is not None:
            return
        if self._clock() >= self._deadline_at:
            assert self.deadline is not None
            self._report.error = DeadlineExceeded(self.deadline)
            self._halt("deadline exceeded")

    # ── Target lifecycle ──

    def _waits_for(self, target: Target) -> list[str]:
        """Ordering-hint predecessors of *target* inside this plan."""
        in_plan = {t.name for t in self.plan.targets}
        hints = [n for n in target.after if n in in_plan]
        hints += [t.name for t in self.plan.targets if target.name in t.before]
        return hints

    def _advance(self) -> None:
        """Move every pending target whose predecessors are done."""
        for target in self.plan.targets:
            if self.state(target.name) is not TargetState.PENDING:
                continue

            if self._halt_reason is not None:
                self._transition(
                    target.name, TargetState.SKIPPED, reason=f"run halted: {self._halt_reason}"
                )
                continue

            deps = list(target.depends_on)
            if not all(self.state(n).terminal for n in deps + self._waits_for(target)):
                continue

            blocked = [n for n in deps if self.state(n) is not TargetState.SUCCEEDED]
            if blocked:
                dep = blocked[0]
                self._transition(
                    target.name,
                    TargetState.SKIPPED,
                    reason=f"dependency '{dep}' {self.state(dep).value}",
                )
                continue

            self._start(target)

    def _start(self, target: Target) -> None:
        name = target.name
        self._transition(name, TargetState.PRECONDITION_CHECKING)
        for precondition in target.requires:
            try:
                precondition.verify(self.context)
            except PreconditionNotMet as e:
                logger.warning("Target %s: %s", name, e)
                self._fail(target, e)
                return

        self._transition(name, TargetState.READY)

        if target.action is None:
            self._transition(name, TargetState.RUNNING)
            self._transition(name, TargetState.SUCCEEDED)
            return

        try:
            combinations = self._combinations(target)
        except MatrixError as e:
            self._transition(name, TargetState.RUNNING)
            self._fail(target, ActionFailure(name, [], message=str(e)))
            return

        actions = [
            (i, Action(
                id=Action.invocation_id(name, combo),
                adapter=target.action.adapter,
                target=name,
                params=dict(target.action.params),
                combination=combo,
            ))
            for i, combo in enumerate(combinations)
        ]
        batch = _Batch(
            target=target,
            pending=deque(actions),
            limit=min(target.parallelism or self.max_parallelism, self.max_parallelism),
            started=self._clock(),
            receipts=[None] * len(actions),
        )
        self._transition(name, TargetState.RUNNING)
        logger.info("Target %s: %d invocation(s)", name, len(actions))
        self._batches.append(batch)

    def _combinations(self, target: Target) -> list[dict[str, str]]:
        if not target.fans_out:
            return [{}]
        matrix = build_matrix(target.matrix, self.context.root, target.allow_empty_matrix)
        return matrix.combinations()

    def _fail(self, target: Target, error: BuildError, **changes: Any) -> None:
        self._transition(target.name, TargetState.FAILED, error=error, **changes)
        if target.load_bearing:
            if self._halt_reason is None:
                self._report.halted_by = target.name
            self._halt(f"load-bearing target '{target.name}' failed")

    # ── Dispatch ──

    def _invoke(self, action: Action) -> Receipt:
        """Worker body: render templates, then run through the registry."""
        values = self.context.template_values()
        values.update(action.combination)
        try:
            rendered = render_params(action.params, values)
        except (KeyError, IndexError, ValueError) as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Cannot render action params: {type(e).__name__}: {e}",
                combination=action.combination,
            )
        action = action.model_copy(update={"params": {**action.combination, **rendered}})
        return self.registry.execute_action(action, build=self.context, dry_run=self.dry_run)

    def _dispatch(self, pool: ThreadPoolExecutor) -> None:
        for batch in self._batches:
            while batch.can_dispatch and self._in_flight < self.max_parallelism:
                index, action = batch.pending.popleft()
                batch.in_flight += 1
                self._in_flight += 1
                logger.debug("Dispatching %s", action.id)
                future = pool.submit(self._invoke, action)
                future.add_done_callback(
                    lambda f, b=batch, i=index, a=action: self._completions.put((b, i, a, f))
                )

    def _collect(self) -> None:
        """Wait for one completion (or the deadline), then record every queued one."""
        timeout = None
        if self._deadline_at is not None and self._report.error is None:
            timeout = max(self._deadline_at - self._clock(), 0.0)
        try:
            item = self._completions.get(timeout=timeout)
        except queue.Empty:
            return

        # Record everything already finished before anything new is dispatched
        while True:
            self._record(*item)
            try:
                item = self._completions.get_nowait()
            except queue.Empty:
                return

    def _record(self, batch: _Batch, index: int, action: Action, future: Future[Receipt]) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Invocation %s raised: %s", action.id, exc)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {exc}",
                combination=action.combination,
            )
        else:
            receipt = future.result()

        batch.in_flight -= 1
        self._in_flight -= 1
        batch.receipts[index] = receipt

        if receipt.failed:
            logger.warning("Invocation %s failed: %s", receipt.action_id, receipt.error)
            if batch.policy is FailurePolicy.FAIL_FAST and not batch.halted:
                batch.halted = True
                logger.info(
                    "Target %s: fail-fast, withholding %d queued invocation(s)",
                    batch.target.name, len(batch.pending),
                )

    # ── Completion ──

    def _sweep(self) -> bool:
        """Finish every batch with nothing left to run. True if any finished."""
        done = [b for b in self._batches if b.done]
        for batch in done:
            self._finish(batch)
        return bool(done)

    def _finish(self, batch: _Batch) -> None:
        target = batch.target
        self._batches.remove(batch)

        withheld = len(batch.pending)
        dispatched = len(batch.receipts) - withheld
        for index, action in batch.pending:
            batch.receipts[index] = Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason="not dispatched",
                combination=action.combination,
            )
        batch.pending.clear()

        receipts = [r for r in batch.receipts if r is not None]
        duration_ms = int((self._clock() - batch.started) * 1000)
        failures = [r for r in receipts if r.failed]

        if failures:
            self._fail(
                target,
                ActionFailure(target.name, failures),
                receipts=receipts,
                duration_ms=duration_ms,
            )
        elif withheld and not dispatched:
            # Halted by something else before any invocation ran
            self._transition(
                target.name,
                TargetState.SKIPPED,
                reason=f"run halted: {self._halt_reason}",
                receipts=receipts,
                duration_ms=duration_ms,
            )
        elif withheld:
            error: BuildError = self._report.error or RunHalted(
                target.name, self._halt_reason or "halted"
            )
            self._fail(target, error, receipts=receipts, duration_ms=duration_ms)
        else:
            self._transition(
                target.name, TargetState.SUCCEEDED, receipts=receipts, duration_ms=duration_ms
            )
