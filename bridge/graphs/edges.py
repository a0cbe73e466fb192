"""Edge logic and routing for the orchestration graph."""

from typing import Literal

from bridge.graphs.state import OrchestrationState
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


def route_model_output(state: OrchestrationState) -> Literal["dispatch", "end"]:
    """Route from the model node.

    Ends on a provider error or when the model requested no calls.
    """
    if state.error:
        logger.warning(f"Ending run after model error: {state.error}")
        return "end"

    if state.next_step == "dispatch" and state.pending_calls:
        return "dispatch"

    return "end"


def route_evaluation_output(state: OrchestrationState) -> Literal["model", "end"]:
    """Route from the evaluate node: another model round or done."""
    logger.debug(f"Routing from evaluate node. Next step: {state.next_step}")

    if state.next_step == "model":
        return "model"
    return "end"
