"""Base types for callable functions exposed to the model."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from bridge.models.llm import FunctionResult

FunctionHandler = Callable[[Any], Awaitable[FunctionResult]]


class FunctionArguments(BaseModel):
    """Base for argument models.

    Fields are declared in snake_case and exposed to the model in camelCase,
    which is how Slack-style function schemas name their parameters.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


@dataclass(frozen=True)
class FunctionDefinition:
    """A function the model may call, with its argument schema and handler."""

    name: str
    description: str
    arguments_model: type[FunctionArguments]
    handler: FunctionHandler

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the arguments, as sent to the model provider."""
        return self.arguments_model.model_json_schema(by_alias=True)

    def parse_arguments(self, raw_arguments: dict[str, Any]) -> FunctionArguments:
        """Validate raw model-supplied arguments."""
        return self.arguments_model.model_validate(raw_arguments)
