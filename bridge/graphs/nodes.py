"""Node implementations for the orchestration graph.

Nodes are built by factories that close over their collaborators, so the graph
has no module-level dependencies and tests can inject fakes.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from bridge.clients.base import ModelProvider
from bridge.graphs.state import OrchestrationState
from bridge.services.continuation import (
    ContinuationStrategy,
    build_follow_up_prompt,
    continuation_system_prompt,
)
from bridge.services.formatter import ModelFamily, create_system_message, create_user_message, format_messages
from bridge.tools.dispatcher import FunctionDispatcher
from bridge.tools.registry import FunctionRegistry
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

Node = Callable[[OrchestrationState], Awaitable[dict[str, Any]]]


def make_model_node(provider: ModelProvider, registry: FunctionRegistry) -> Node:
    """Build the node that calls the model with the current history and functions."""

    async def model_node(state: OrchestrationState) -> dict[str, Any]:
        phase = f"follow-up round {state.follow_up_rounds}" if state.follow_up_rounds else "initial round"
        functions = registry.definitions(state.function_names)
        history = format_messages(state.history, ModelFamily.from_model(provider.model))

        logger.info(f"Calling model for {phase} with {len(functions)} function(s)")

        try:
            response = await provider.generate_response(state.prompt, history, functions)
        except Exception as e:
            logger.error(f"Model call failed during {phase}: {e}", exc_info=True)
            return {"error": str(e) or e.__class__.__name__, "next_step": "end"}

        usage = response.metadata.get("usage", {})
        update: dict[str, Any] = {
            "pending_calls": response.function_calls,
            "model": response.model,
            "total_input_tokens": state.total_input_tokens + usage.get("input_tokens", 0),
            "total_output_tokens": state.total_output_tokens + usage.get("output_tokens", 0),
            "next_step": "dispatch" if response.function_calls else "end",
        }
        # Follow-up content is not part of the reply
        if not state.follow_up_rounds:
            update["first_content"] = response.content

        if response.function_calls:
            logger.info(f"Model requested {len(response.function_calls)} function call(s)")
        return update

    return model_node


def make_dispatch_node(dispatcher: FunctionDispatcher) -> Node:
    """Build the node that dispatches pending calls in order."""

    async def dispatch_node(state: OrchestrationState) -> dict[str, Any]:
        calls = list(state.pending_calls)
        skipped = 0
        if state.follow_up_rounds:
            seen = {record.signature() for record in state.results}
            fresh = []
            for call in calls:
                signature = call.signature()
                if signature in seen:
                    logger.info(f"Skipping repeated call to {call.name}")
                    skipped += 1
                    continue
                seen.add(signature)
                fresh.append(call)
            calls = fresh

        records = await dispatcher.dispatch_all(calls)

        return {
            "results": records,
            "round_results": records,
            "pending_calls": [],
            "skipped_calls": state.skipped_calls + skipped,
            "next_step": "evaluate",
        }

    return dispatch_node


def make_evaluate_node(strategy: ContinuationStrategy, max_follow_up_rounds: int) -> Node:
    """Build the node that decides whether to run a follow-up round."""

    async def evaluate_node(state: OrchestrationState) -> dict[str, Any]:
        if not state.round_results:
            return {"next_step": "end"}

        if state.follow_up_rounds >= max_follow_up_rounds:
            logger.info(f"Follow-up round limit ({max_follow_up_rounds}) reached")
            return {"next_step": "end"}

        last_call = state.round_results[-1]
        if not strategy.should_continue(last_call, state.user_text, state.results):
            return {"next_step": "end"}

        first_call = state.round_results[0]
        function_names = strategy.follow_up_functions(first_call, state.user_text)
        prompt = build_follow_up_prompt(state.user_text, state.results)
        logger.info(f"Continuing after {last_call.function_name} with {', '.join(function_names)}")

        return {
            "prompt": prompt,
            "history": [
                create_system_message(continuation_system_prompt(first_call.function_name)),
                create_user_message(prompt),
            ],
            "function_names": function_names,
            "follow_up_rounds": state.follow_up_rounds + 1,
            "next_step": "model",
        }

    return evaluate_node
