"""Executes model-requested function calls against the registry."""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from bridge.models.llm import DispatchRecord, FunctionCall, FunctionResult
from bridge.tools.registry import FunctionRegistry
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


def _validation_message(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in detail['loc']) or 'arguments'}: {detail['msg']}"
        for detail in error.errors()
    )
    return f"Invalid arguments: {details}"


class FunctionDispatcher:
    """Turns a ``FunctionCall`` into a ``FunctionResult``.

    Never raises for per-call problems: unknown names, invalid arguments and
    handler exceptions all become ``{"success": False, "error": ...}``. Each
    call is executed at most once and is never retried here.
    """

    def __init__(self, registry: FunctionRegistry):
        self.registry = registry

    async def dispatch(self, call: FunctionCall) -> FunctionResult:
        definition = self.registry.get(call.name)
        if definition is None:
            logger.warning(f"Model requested unknown function: {call.name}")
            return {"success": False, "error": f"Unknown function: {call.name}"}

        try:
            arguments = definition.parse_arguments(call.arguments)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {call.name}: {e.error_count()} error(s)")
            return {"success": False, "error": _validation_message(e)}

        logger.info(f"Dispatching {call.name}")
        try:
            payload = await definition.handler(arguments)
        except Exception as e:
            logger.error(f"Function {call.name} failed: {e}", exc_info=True)
            return {"success": False, "error": str(e) or e.__class__.__name__}

        return self._normalize(payload)

    async def dispatch_all(self, calls: Sequence[FunctionCall]) -> list[DispatchRecord]:
        """Dispatch calls sequentially in the given order.

        A failed call does not stop the ones after it.
        """
        records = []
        for call in calls:
            result = await self.dispatch(call)
            records.append(DispatchRecord(function_name=call.name, result=result, arguments=dict(call.arguments)))
        return records

    @staticmethod
    def _normalize(payload: Any) -> FunctionResult:
        if payload is None:
            return {"success": True}
        if not isinstance(payload, Mapping):
            return {"success": True, "data": payload}
        if payload.get("success") is False:
            return dict(payload)
        return {**payload, "success": True}
