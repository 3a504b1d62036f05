"""Gemini client factory and the concierge chat service built on it."""

from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from google import genai
from google.genai import types

from condoscout.config import GeminiConfig, get_settings
from condoscout.constants import SYSTEM_INSTRUCTION
from condoscout.models.chat import Location, ProviderReply

logger = structlog.get_logger(__name__)


def get_gemini_client(api_key: str | None = None) -> genai.Client:
    """
    Create a google-genai client.

    Args:
        api_key: Gemini API key. Defaults to settings.gemini_api_key.

    Returns:
        genai.Client (use `.aio` for the async surface).
    """
    settings = get_settings()
    key = api_key or settings.gemini_api_key
    return genai.Client(api_key=key)


def extract_grounding_chunks(response: Any) -> list[dict[str, Any]]:
    """Pull the first candidate's grounding chunks out of a response as plain dicts."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    result: list[dict[str, Any]] = []
    for chunk in chunks:
        if isinstance(chunk, Mapping):
            result.append(dict(chunk))
        elif hasattr(chunk, "model_dump"):
            result.append(chunk.model_dump(mode="json", exclude_none=True))
    return result


class GeminiChatService:
    """
    Opens and drives Gemini chats configured for the concierge.

    Every chat carries the fixed system instruction and a single Google Maps
    tool. A user location, when known, is forwarded as the tool's retrieval
    hint without inspection.
    """

    def __init__(self, client: genai.Client, config: GeminiConfig | None = None) -> None:
        self._client = client
        self._config = config or GeminiConfig()

    @property
    def model(self) -> str:
        return self._config.model

    def build_config(self, location: Location | None = None) -> types.GenerateContentConfig:
        """Generation config shared by chat creation and per-turn overrides."""
        tool_config = None
        if location is not None:
            tool_config = types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(
                        latitude=location.latitude,
                        longitude=location.longitude,
                    )
                )
            )
        return types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            tools=[types.Tool(google_maps=types.GoogleMaps())],
            tool_config=tool_config,
            temperature=self._config.temperature,
        )

    def open_chat(self, history: Sequence[tuple[str, str]] = ()) -> Any:
        """Create a chat seeded with (role, text) turns. No network call is made."""
        contents = [
            types.Content(role=role, parts=[types.Part(text=text)])
            for role, text in history
        ]
        logger.debug("gemini_chat_opened", model=self._config.model, seeded_turns=len(contents))
        return self._client.aio.chats.create(
            model=self._config.model,
            config=self.build_config(),
            history=contents,
        )

    async def send(
        self,
        chat: Any,
        text: str,
        location: Location | None = None,
    ) -> ProviderReply:
        """Send one user turn on `chat` and return the reply text with its grounding."""
        # A per-message config replaces the chat config, so it is rebuilt in full.
        config = self.build_config(location) if location is not None else None
        response = await chat.send_message(text, config=config)
        return ProviderReply(
            text=response.text,
            grounding_chunks=extract_grounding_chunks(response),
        )
