"""State definitions for the orchestration graph."""

import operator
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from bridge.models.llm import DispatchRecord, FunctionCall
from bridge.models.messages import ConversationMessage

NextStep = Literal["model", "dispatch", "evaluate", "end"]


class OrchestrationState(BaseModel):
    """State passed through every node of one orchestration run.

    ``history`` and ``prompt`` are what the next model call sends: the minimal
    conversation history on the first round, a fresh continuation pair on
    follow-up rounds.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_text: str

    # Next model call
    prompt: str
    history: list[ConversationMessage] = Field(default_factory=list)
    function_names: list[str] | None = None  # None offers the full catalog

    # Dispatch tracking
    pending_calls: list[FunctionCall] = Field(default_factory=list)
    results: Annotated[list[DispatchRecord], operator.add] = Field(default_factory=list)
    round_results: list[DispatchRecord] = Field(default_factory=list)
    skipped_calls: int = 0

    # Reply inputs
    first_content: str = ""
    model: str = "unknown"

    # Control flow
    follow_up_rounds: int = 0
    next_step: NextStep | None = None
    error: str | None = None

    # Token usage tracking
    total_input_tokens: int = 0
    total_output_tokens: int = 0
