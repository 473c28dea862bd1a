"""
Adapter registry — central dispatch for all action invocations.

The registry is the single point of adapter management. It handles
registration, lookup, dry runs, and turning every outcome (including
stray exceptions) into a Receipt. The executor never talks to
adapters directly — always through the registry.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from typing import Any

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.core.context import BuildContext
from buildrig.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Safe to call ``execute_action`` from several worker threads;
    registration is expected to happen before a run starts.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}
        self._lock = threading.Lock()

    def register(self, adapter: Adapter) -> None:
        """Register an adapter, replacing any with the same name."""
        name = adapter.name
        with self._lock:
            if name in self._adapters:
                logger.warning("Overwriting existing adapter: %s", name)
            self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        """Remove an adapter from the registry."""
        with self._lock:
            self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        """Look up an adapter by name."""
        with self._lock:
            return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        """List all registered adapter names."""
        with self._lock:
            return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for name in self.list_adapters():
            adapter = self.get(name)
            if adapter is None:
                continue
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_action(
        self,
        action: Action,
        build: BuildContext | None = None,
        dry_run: bool = False,
    ) -> Receipt:
        """Execute one invocation through the appropriate adapter.

        This is the main dispatch method. It:
        1. Resolves the adapter
        2. Builds the execution context
        3. Validates the action
        4. Executes (or dry-runs)
        5. Returns a Receipt (never raises)
        """
        started_at = datetime.now(UTC).isoformat()
        start_time = time.monotonic()

        context = ExecutionContext(action=action, build=build, dry_run=dry_run)

        adapter = self.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
                combination=action.combination,
            )

        # Validate
        try:
            is_valid, error_msg = adapter.validate(context)
            if not is_valid:
                return Receipt.failure(
                    adapter=action.adapter,
                    action_id=action.id,
                    error=f"Validation failed: {error_msg}",
                    combination=action.combination,
                )
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
                combination=action.combination,
            )

        # Dry run: validated but not executed
        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {action.adapter}:{action.id}",
                combination=action.combination,
                metadata={"dry_run": True},
            )

        # Execute
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        # Timing and combination are owned by the registry
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        return receipt.model_copy(
            update={
                "started_at": started_at,
                "ended_at": datetime.now(UTC).isoformat(),
                "duration_ms": elapsed_ms,
                "combination": action.combination,
            }
        )


def default_registry() -> AdapterRegistry:
    """Registry with the built-in action adapters."""
    from buildrig.adapters.notify.webhook import WebhookAdapter
    from buildrig.adapters.shell.command import ShellCommandAdapter, ToolchainAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    registry.register(ToolchainAdapter())
    registry.register(WebhookAdapter())
    return registry
