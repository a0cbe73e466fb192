"""Orchestration graph: model call, ordered dispatch, bounded follow-ups."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from bridge.clients.base import ModelProvider
from bridge.errors import OrchestrationError
from bridge.graphs.edges import route_evaluation_output, route_model_output
from bridge.graphs.nodes import make_dispatch_node, make_evaluate_node, make_model_node
from bridge.graphs.state import OrchestrationState
from bridge.models.llm import DispatchRecord
from bridge.models.messages import ConversationMessage
from bridge.services.continuation import ContinuationStrategy, KeywordContinuationStrategy
from bridge.services.formatter import PLACEHOLDER_RESPONSE
from bridge.tools.dispatcher import FunctionDispatcher
from bridge.tools.registry import FunctionRegistry
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_FOLLOW_UP_ROUNDS = 3
NODES_PER_ROUND = 3


@dataclass
class OrchestrationResult:
    """Outcome of one orchestration run."""

    reply: str
    results: list[DispatchRecord] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


def create_orchestration_graph(
    provider: ModelProvider,
    dispatcher: FunctionDispatcher,
    registry: FunctionRegistry,
    strategy: ContinuationStrategy,
    max_follow_up_rounds: int = DEFAULT_MAX_FOLLOW_UP_ROUNDS,
):
    """Create the orchestration graph.

    ``model`` calls the provider, ``dispatch`` runs the requested calls in
    order, and ``evaluate`` either prepares a follow-up round for ``model`` or
    ends the run.

    Returns:
        Compiled LangGraph workflow
    """
    workflow = StateGraph(OrchestrationState)

    workflow.add_node("model", make_model_node(provider, registry))
    workflow.add_node("dispatch", make_dispatch_node(dispatcher))
    workflow.add_node("evaluate", make_evaluate_node(strategy, max_follow_up_rounds))

    workflow.set_entry_point("model")

    workflow.add_conditional_edges("model", route_model_output, {"dispatch": "dispatch", "end": END})
    workflow.add_edge("dispatch", "evaluate")
    workflow.add_conditional_edges("evaluate", route_evaluation_output, {"model": "model", "end": END})

    # Runs are independent; conversation state lives in the context store
    return workflow.compile()


def synthesize_reply(results: Sequence[DispatchRecord], model_content: str = "") -> str:
    """Build the reply from dispatched results and the first model content.

    Each result contributes its ``message`` or a generic sentence, in call
    order. Model content is appended unless it is empty or the placeholder.
    """
    content = (model_content or "").strip()
    if not results:
        return content or PLACEHOLDER_RESPONSE

    lines = []
    for record in results:
        message = record.result.get("message")
        if record.success:
            lines.append(message or f"I've successfully completed the {record.function_name} action.")
        else:
            error = record.result.get("error", "Unknown error")
            lines.append(f"I couldn't complete the {record.function_name} action: {error}")

    if content and content != PLACEHOLDER_RESPONSE:
        lines.append(content)
    return "\n\n".join(lines)


class OrchestrationManager:
    """Runs one user request through the orchestration graph."""

    def __init__(
        self,
        provider: ModelProvider,
        registry: FunctionRegistry,
        dispatcher: FunctionDispatcher | None = None,
        strategy: ContinuationStrategy | None = None,
        max_follow_up_rounds: int = DEFAULT_MAX_FOLLOW_UP_ROUNDS,
    ):
        if max_follow_up_rounds < 0:
            raise ValueError("max_follow_up_rounds cannot be negative")

        self.provider = provider
        self.registry = registry
        self.dispatcher = dispatcher or FunctionDispatcher(registry)
        self.strategy = strategy or KeywordContinuationStrategy()
        self.max_follow_up_rounds = max_follow_up_rounds
        self.graph = create_orchestration_graph(
            provider, self.dispatcher, registry, self.strategy, max_follow_up_rounds
        )

    @property
    def recursion_limit(self) -> int:
        return NODES_PER_ROUND * (self.max_follow_up_rounds + 1) + 2

    async def run(self, user_text: str, history: Sequence[ConversationMessage]) -> OrchestrationResult:
        """Process a user request.

        Args:
            user_text: The user's original text
            history: Minimal history for the first model call, ending with the
                user's message

        Returns:
            Reply text, every dispatched result in order, and run metadata

        Raises:
            OrchestrationError: If the model provider fails; carries the results
                dispatched before the failure
        """
        initial_state = OrchestrationState(user_text=user_text, prompt=user_text, history=list(history))

        result = await self.graph.ainvoke(initial_state.model_dump(), {"recursion_limit": self.recursion_limit})

        records: list[DispatchRecord] = list(result.get("results", []))
        if result.get("error"):
            raise OrchestrationError(f"Model provider error: {result['error']}", partial_results=records)

        metadata = {
            "model": result.get("model", "unknown"),
            "follow_up_rounds": result.get("follow_up_rounds", 0),
            "skipped_calls": result.get("skipped_calls", 0),
            "total_input_tokens": result.get("total_input_tokens", 0),
            "total_output_tokens": result.get("total_output_tokens", 0),
        }
        logger.info(
            f"Run finished with {len(records)} function result(s) after {metadata['follow_up_rounds']} follow-up round(s)"
        )
        return OrchestrationResult(
            reply=synthesize_reply(records, result.get("first_content", "")),
            results=records,
            metadata=metadata,
        )
