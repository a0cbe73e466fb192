"""Environment-driven settings for the bridge process."""

import os
from dataclasses import dataclass, field
from typing import Literal

from dotenv import load_dotenv

from bridge.errors import ConfigurationError

ProviderName = Literal["openrouter", "anthropic"]

DEFAULT_MODELS: dict[str, str] = {
    "openrouter": "anthropic/claude-3.5-sonnet",
    "anthropic": "claude-3-5-sonnet-20241022",
}


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    return default if value is None or value.strip() == "" else value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class SlackSettings:
    """Slack credentials."""

    bot_token: str = ""
    user_token: str = ""
    signing_secret: str = ""


@dataclass(frozen=True)
class ProviderSettings:
    """Model provider selection and credentials."""

    name: ProviderName = "openrouter"
    model: str = DEFAULT_MODELS["openrouter"]
    openrouter_api_key: str = ""
    anthropic_api_key: str = ""
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class ConversationSettings:
    """Bounds for conversation state and orchestration."""

    max_conversations: int = 1000
    idle_timeout_minutes: int = 60
    max_history_messages: int = 2
    max_follow_up_rounds: int = 3
    max_message_chars: int = 4000


@dataclass(frozen=True)
class ApiSettings:
    """HTTP API endpoint settings."""

    enabled: bool = False
    api_key: str = ""
    rate_limit_per_minute: int = 60


@dataclass(frozen=True)
class Settings:
    """All settings for one bridge process."""

    slack: SlackSettings = field(default_factory=SlackSettings)
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    conversation: ConversationSettings = field(default_factory=ConversationSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from the environment (and a ``.env`` file if present).

        Raises:
            ConfigurationError: If a value is malformed or a required credential
                for the selected provider is missing.
        """
        if dotenv:
            load_dotenv()

        provider_name = _env_str("MODEL_PROVIDER", "openrouter").lower()
        if provider_name not in DEFAULT_MODELS:
            raise ConfigurationError(f"Unsupported MODEL_PROVIDER: {provider_name}")

        settings = cls(
            slack=SlackSettings(
                bot_token=_env_str("SLACK_BOT_TOKEN"),
                user_token=_env_str("SLACK_USER_TOKEN"),
                signing_secret=_env_str("SLACK_SIGNING_SECRET"),
            ),
            provider=ProviderSettings(
                name=provider_name,  # type: ignore[arg-type]
                model=_env_str("MODEL", DEFAULT_MODELS[provider_name]),
                openrouter_api_key=_env_str("OPENROUTER_API_KEY"),
                anthropic_api_key=_env_str("ANTHROPIC_API_KEY"),
                timeout_seconds=float(_env_int("MODEL_TIMEOUT_SECONDS", 60)),
            ),
            conversation=ConversationSettings(
                max_conversations=_env_int("MAX_CONVERSATIONS", 1000),
                idle_timeout_minutes=_env_int("CONVERSATION_IDLE_MINUTES", 60),
                max_history_messages=_env_int("MAX_HISTORY_MESSAGES", 2),
                max_follow_up_rounds=_env_int("MAX_FOLLOW_UP_ROUNDS", 3),
                max_message_chars=_env_int("MAX_MESSAGE_CHARS", 4000),
            ),
            api=ApiSettings(
                enabled=_env_bool("ENABLE_API_ENDPOINT", False),
                api_key=_env_str("API_KEY"),
                rate_limit_per_minute=_env_int("API_RATE_LIMIT", 60),
            ),
            log_level=_env_str("LOG_LEVEL", "INFO"),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Check cross-field requirements."""
        missing = []
        if self.provider.name == "openrouter" and not self.provider.openrouter_api_key:
            missing.append("OPENROUTER_API_KEY")
        if self.provider.name == "anthropic" and not self.provider.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        if not self.slack.bot_token:
            missing.append("SLACK_BOT_TOKEN")
        if self.api.enabled and not self.api.api_key:
            missing.append("API_KEY")
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        if self.conversation.max_conversations < 1:
            raise ConfigurationError("MAX_CONVERSATIONS must be at least 1")
        if self.conversation.max_follow_up_rounds < 0:
            raise ConfigurationError("MAX_FOLLOW_UP_ROUNDS cannot be negative")
