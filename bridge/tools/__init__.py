"""Functions the model can call, backed by the Slack Web API."""

from bridge.clients.slack import SlackClient
from bridge.tools.admin import create_admin_functions
from bridge.tools.base import FunctionArguments, FunctionDefinition
from bridge.tools.channels import create_channel_functions
from bridge.tools.dispatcher import FunctionDispatcher
from bridge.tools.files import create_file_functions
from bridge.tools.messages import create_message_functions
from bridge.tools.registry import FunctionRegistry
from bridge.tools.reminders import create_reminder_functions
from bridge.tools.users import create_user_functions


def create_slack_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """The full Slack function catalog, in the order offered to the model."""
    return [
        *create_channel_functions(slack),
        *create_message_functions(slack),
        *create_file_functions(slack),
        *create_reminder_functions(slack),
        *create_user_functions(slack),
        *create_admin_functions(slack),
    ]


def build_default_registry(slack: SlackClient) -> FunctionRegistry:
    """Registry holding every Slack function."""
    return FunctionRegistry(create_slack_functions(slack))


__all__ = [
    "FunctionArguments",
    "FunctionDefinition",
    "FunctionDispatcher",
    "FunctionRegistry",
    "build_default_registry",
    "create_slack_functions",
]
