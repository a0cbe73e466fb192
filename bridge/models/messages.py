"""Conversation message models."""

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class TextContent(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    """Image reference with the detail level the model should use."""

    url: str
    detail: Literal["low", "high", "auto"] = "auto"


class ImageContent(BaseModel):
    """Image content part."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = Annotated[TextContent | ImageContent, Field(discriminator="type")]
MessageContent = str | list[ContentPart]


class ConversationMessage(BaseModel):
    """One turn in a conversation."""

    role: Role
    content: MessageContent
    name: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def text(self) -> str:
        """Text of the message, with image parts left out."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextContent))

    @property
    def content_length(self) -> int:
        """Number of characters across all text content."""
        if isinstance(self.content, str):
            return len(self.content)
        return sum(len(part.text) for part in self.content if isinstance(part, TextContent))
