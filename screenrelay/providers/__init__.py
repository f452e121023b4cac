"""Provider adapters and the factory that builds them."""

from __future__ import annotations

from screenrelay.core.settings import RelaySettings
from screenrelay.models.session import Provider
from screenrelay.providers.base import ProviderAdapter
from screenrelay.providers.chat_completion import ChatCompletionAdapter
from screenrelay.providers.placeholder import PlaceholderAdapter
from screenrelay.providers.realtime import (
    RealtimeConnection,
    RealtimeEvent,
    RealtimeTransport,
    StreamingRealtimeAdapter,
)

__all__ = [
    "ChatCompletionAdapter",
    "PlaceholderAdapter",
    "ProviderAdapter",
    "RealtimeConnection",
    "RealtimeEvent",
    "RealtimeTransport",
    "StreamingRealtimeAdapter",
    "create_adapter",
    "create_adapters",
]


def create_adapter(
    provider: Provider,
    settings: RelaySettings | None = None,
    realtime_transport: RealtimeTransport | None = None,
    http_transport=None,
) -> ProviderAdapter:
    """Build the adapter for one provider."""
    if provider is Provider.STREAMING_REALTIME:
        return StreamingRealtimeAdapter(settings, transport=realtime_transport)
    if provider is Provider.CHAT_COMPLETION:
        return ChatCompletionAdapter(settings)
    if provider is Provider.PLACEHOLDER_THIRD:
        return PlaceholderAdapter(settings, transport=http_transport)
    raise ValueError(f"Unknown provider: {provider}")


def create_adapters(
    settings: RelaySettings | None = None,
    realtime_transport: RealtimeTransport | None = None,
    http_transport=None,
) -> dict[Provider, ProviderAdapter]:
    """One adapter per provider."""
    return {
        p: create_adapter(p, settings, realtime_transport, http_transport) for p in Provider
    }
