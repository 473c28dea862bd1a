"""
Mock adapter — universal test double for action invocations.

Simulates an action collaborator without touching external tools.
Configurable to fail specific invocations, to block for a while, and
it records the peak number of concurrent calls it observed.
"""

from __future__ import annotations

import threading
import time

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Can be configured
    with failures per invocation id and a per-call delay.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
        delay: float = 0.0,
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._delay = delay
        self._failures: dict[str, str] = {}
        self._call_log: list[ExecutionContext] = []
        self._lock = threading.Lock()
        self._active = 0
        self._peak = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        with self._lock:
            return list(self._call_log)

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        with self._lock:
            return len(self._call_log)

    @property
    def called_ids(self) -> list[str]:
        return [c.action.id for c in self.call_log]

    @property
    def peak_concurrency(self) -> int:
        """Highest number of simultaneous execute() calls seen."""
        with self._lock:
            return self._peak

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific invocation to fail."""
        self._failures[action_id] = error

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        with self._lock:
            self._call_log.append(context)
            self._active += 1
            self._peak = max(self._peak, self._active)
        try:
            if self._delay:
                time.sleep(self._delay)
        finally:
            with self._lock:
                self._active -= 1

        action_id = context.action.id
        if action_id in self._failures:
            return Receipt.failure(
                adapter=self._name,
                action_id=action_id,
                error=self._failures[action_id],
            )

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and configured failures."""
        with self._lock:
            self._call_log.clear()
            self._failures.clear()
            self._peak = 0
