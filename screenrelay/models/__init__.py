"""Data models for screenrelay."""

from screenrelay.models.result import RelayResult
from screenrelay.models.session import (
    Capability,
    ConversationSnapshot,
    ConversationTurn,
    Provider,
    Session,
    SessionParams,
)

__all__ = [
    "Capability",
    "ConversationSnapshot",
    "ConversationTurn",
    "Provider",
    "RelayResult",
    "Session",
    "SessionParams",
]
