"""
Data models for concierge chat sessions.

These models define the shape of messages, place cards and sessions, both in
memory and in the persisted JSON blob. Field names serialize in camelCase
(``isThinking``, ``lastUpdated``) so stored blobs keep the web client's shape.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    MODEL = "model"


class PlaceRecord(_CamelModel):
    """A place card extracted from the provider's map grounding."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(description="Place name as returned by the maps tool")
    uri: str = Field(description="Link to the place on the map")
    place_id: str | None = Field(default=None, description="Provider place identifier")
    address: str | None = Field(default=None, description="Postal address, when supplied")
    description: str | None = Field(default=None, description="First review snippet, if any")


class Message(_CamelModel):
    """A single chat message. Model placeholders carry is_thinking=True until resolved."""

    id: str
    role: MessageRole
    text: str
    places: list[PlaceRecord] | None = None
    is_thinking: bool = False


class ChatSession(_CamelModel):
    """One independent conversation thread."""

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    created_at: int = Field(description="Epoch milliseconds")
    last_updated: int = Field(description="Epoch milliseconds")

    def has_user_turn(self) -> bool:
        return any(m.role == MessageRole.USER for m in self.messages)


class Location(BaseModel):
    """Coordinates forwarded to the chat service as a grounding hint."""

    latitude: float
    longitude: float


class TurnResult(BaseModel):
    """Outcome of one sendTurn call, successful or degraded."""

    text: str
    places: list[PlaceRecord] = Field(default_factory=list)


class ProviderReply(BaseModel):
    """Raw reply from the chat service before grounding normalization."""

    text: str | None = None
    grounding_chunks: list[dict[str, Any]] | None = None


class StreamEvent(_CamelModel):
    """Event sent while a turn is streamed to the client."""

    type: str = Field(description="Event type: thinking, message, error")
    session_id: str = Field(default="", description="Session the turn belongs to")
    message: dict[str, Any] | None = Field(default=None, description="Serialized Message")
    done: bool = Field(default=False, description="True on the final event of a turn")
