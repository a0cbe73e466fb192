"""Wiring of the bridge's components from settings."""

from dataclasses import dataclass

from bridge.api.rate_limit import ApiRateLimiter
from bridge.clients.anthropic import AnthropicClient, AnthropicConfig
from bridge.clients.base import ModelProvider
from bridge.clients.openrouter import OpenRouterClient, OpenRouterConfig
from bridge.clients.slack import SlackClient
from bridge.config import Settings
from bridge.graphs.orchestration import OrchestrationManager
from bridge.services.context_store import InMemoryContextStore
from bridge.services.conversation import ConversationService
from bridge.services.slack_events import SlackEventHandler
from bridge.tools import FunctionDispatcher, FunctionRegistry, build_default_registry
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BridgeContainer:
    """Everything one bridge process needs, built once at startup."""

    settings: Settings
    store: InMemoryContextStore
    registry: FunctionRegistry
    provider: ModelProvider
    orchestrator: OrchestrationManager
    conversations: ConversationService
    rate_limiter: ApiRateLimiter
    slack: SlackClient
    events: SlackEventHandler

    async def aclose(self) -> None:
        """Close HTTP clients."""
        await self.slack.aclose()
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()


def build_provider(settings: Settings) -> ModelProvider:
    """Create the model provider selected by ``MODEL_PROVIDER``."""
    provider = settings.provider
    if provider.name == "anthropic":
        return AnthropicClient(
            provider.anthropic_api_key,
            AnthropicConfig(model=provider.model, timeout=provider.timeout_seconds),
        )
    return OpenRouterClient(
        provider.openrouter_api_key,
        OpenRouterConfig(model=provider.model, timeout=provider.timeout_seconds),
    )


def build_container(
    settings: Settings,
    provider: ModelProvider | None = None,
    registry: FunctionRegistry | None = None,
    slack: SlackClient | None = None,
) -> BridgeContainer:
    """Build all components; collaborators can be passed in to replace defaults."""
    slack = slack or SlackClient(settings.slack.bot_token, settings.slack.user_token)
    registry = registry or build_default_registry(slack)
    provider = provider or build_provider(settings)

    store = InMemoryContextStore(
        max_conversations=settings.conversation.max_conversations,
        idle_timeout_minutes=settings.conversation.idle_timeout_minutes,
    )
    orchestrator = OrchestrationManager(
        provider,
        registry,
        dispatcher=FunctionDispatcher(registry),
        max_follow_up_rounds=settings.conversation.max_follow_up_rounds,
    )
    conversations = ConversationService(
        store,
        orchestrator,
        max_history_messages=settings.conversation.max_history_messages,
        max_message_chars=settings.conversation.max_message_chars,
    )

    logger.info(
        f"Bridge ready: provider={settings.provider.name}, model={provider.model}, functions={len(registry)}"
    )
    return BridgeContainer(
        settings=settings,
        store=store,
        registry=registry,
        provider=provider,
        orchestrator=orchestrator,
        conversations=conversations,
        rate_limiter=ApiRateLimiter(settings.api.rate_limit_per_minute),
        slack=slack,
        events=SlackEventHandler(slack, conversations, store),
    )
