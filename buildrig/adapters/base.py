"""
Adapter base — the protocol contract between executor and actions.

This defines the abstract interface that every action collaborator
must implement. The executor only talks to actions through this
protocol, never directly to compilers, packagers or chat services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict

from buildrig.core.context import BuildContext
from buildrig.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute one invocation.

    This is the adapter's view of the world: the rendered action and
    the shared, read-only build context.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Action
    build: BuildContext | None = None
    dry_run: bool = False

    @property
    def params(self) -> dict[str, Any]:
        return self.action.params

    @property
    def working_dir(self) -> str:
        """Resolved working directory for the action."""
        cwd = self.action.params.get("cwd")
        root = str(self.build.root) if self.build is not None else "."
        if cwd:
            return cwd if cwd.startswith("/") else f"{root}/{cwd}"
        return root

    @property
    def env(self) -> dict[str, str]:
        """Environment overrides for spawned processes."""
        return dict(self.build.env) if self.build is not None else {}


class Adapter(ABC):
    """Abstract base class for all action adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'toolchain', 'webhook')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
