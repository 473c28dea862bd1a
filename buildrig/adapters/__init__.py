"""Adapters — action collaborators behind one dispatch registry.

Public re-exports for convenient access.
"""

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.adapters.function import FunctionAdapter
from buildrig.adapters.mock import MockAdapter
from buildrig.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "FunctionAdapter",
    "MockAdapter",
    "default_registry",
]
