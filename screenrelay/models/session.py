"""
Session models for provider connections and conversation history.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, SecretStr


def _utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def new_session_id() -> str:
    """Mint a short conversation session id."""
    return str(uuid.uuid4())[:8]


class Capability(str, Enum):
    """Input modalities a provider may accept."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


class Provider(str, Enum):
    """Backends the router can dispatch to."""

    STREAMING_REALTIME = "streaming_realtime"
    CHAT_COMPLETION = "chat_completion"
    PLACEHOLDER_THIRD = "placeholder_third"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def capabilities(self) -> frozenset[Capability]:
        return PROVIDER_CAPABILITIES[self]

    @property
    def is_streaming(self) -> bool:
        return self is Provider.STREAMING_REALTIME

    @classmethod
    def parse(cls, value: str | Provider) -> Provider:
        """Resolve a provider from its value or one of its aliases."""
        if isinstance(value, Provider):
            return value
        key = value.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            known = ", ".join(sorted({*_ALIASES, *(p.value for p in cls)}))
            raise ValueError(f"Unknown provider '{value}'. Known: {known}") from None


_DISPLAY_NAMES = {
    Provider.STREAMING_REALTIME: "Gemini",
    Provider.CHAT_COMPLETION: "OpenRouter",
    Provider.PLACEHOLDER_THIRD: "Grok",
}

_ALIASES = {
    "gemini": Provider.STREAMING_REALTIME,
    "realtime": Provider.STREAMING_REALTIME,
    "openrouter": Provider.CHAT_COMPLETION,
    "chat": Provider.CHAT_COMPLETION,
    "grok": Provider.PLACEHOLDER_THIRD,
    "placeholder": Provider.PLACEHOLDER_THIRD,
}

# Fixed per provider, never per session instance
PROVIDER_CAPABILITIES: dict[Provider, frozenset[Capability]] = {
    Provider.STREAMING_REALTIME: frozenset(
        {Capability.TEXT, Capability.IMAGE, Capability.AUDIO}
    ),
    Provider.CHAT_COMPLETION: frozenset({Capability.TEXT, Capability.IMAGE}),
    Provider.PLACEHOLDER_THIRD: frozenset(
        {Capability.TEXT, Capability.IMAGE, Capability.AUDIO}
    ),
}


class SessionParams(BaseModel):
    """The exact input used to create a session, replayed on reconnection."""

    model_config = {"frozen": True}

    credentials: SecretStr
    model_id: str | None = None
    custom_prompt: str = ""
    profile: str = "interview"
    language: str = "en-US"


@dataclass(eq=False)
class Session:
    """
    One logical connection to a backend.

    ``handle`` holds whatever the adapter needs to talk to its backend
    (a live connection, a remote session id, or nothing for stateless HTTP).
    """

    provider: Provider
    params: SessionParams
    system_prompt: str
    model_id: str | None = None
    active: bool = True
    last_params: SessionParams | None = None
    handle: Any = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.last_params is None:
            self.last_params = self.params

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.provider.capabilities

    @property
    def credentials(self) -> SecretStr:
        return self.params.credentials

    def deactivate(self) -> None:
        """Mark the session closed and drop the replay parameters."""
        self.active = False
        self.last_params = None


class ConversationTurn(BaseModel):
    """One recorded input/response pair."""

    timestamp: datetime = Field(default_factory=_utcnow)
    input_summary: str
    response_text: str
    provider: Provider | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize in the shape the UI stores turns in."""
        return {
            "timestamp": int(self.timestamp.timestamp() * 1000),
            "inputSummary": self.input_summary,
            "responseText": self.response_text,
        }


class ConversationSnapshot(BaseModel):
    """Read-only view of the current conversation."""

    session_id: str | None
    history: list[ConversationTurn] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "history": [turn.to_wire() for turn in self.history],
        }
