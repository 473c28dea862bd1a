"""
Function adapter — wrap a plain Python callable as an action.

The callable receives the rendered invocation parameters (fan-out
combination included) and reports ``(success, diagnostics)``. A bare
bool is accepted too. This is how programmatic builds plug their own
closures into the executor without writing an Adapter subclass.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Union

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.core.models.action import Receipt

logger = logging.getLogger(__name__)

InvokeResult = Union[bool, tuple[bool, str]]
InvokeFn = Callable[[dict[str, Any]], InvokeResult]


class FunctionAdapter(Adapter):
    """Adapter backed by ``invoke(params) -> (success, diagnostics)``."""

    def __init__(self, adapter_name: str, invoke: InvokeFn):
        self._name = adapter_name
        self._invoke = invoke

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action_id = context.action.id
        try:
            result = self._invoke(dict(context.params))
        except Exception as e:
            logger.debug("Function action %s raised: %s", action_id, e)
            return Receipt.failure(adapter=self._name, action_id=action_id, error=str(e) or type(e).__name__)

        if isinstance(result, tuple):
            success, diagnostics = result
        else:
            success, diagnostics = bool(result), ""

        if success:
            return Receipt.success(adapter=self._name, action_id=action_id, output=diagnostics or "")
        return Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=diagnostics or "action reported failure",
        )
