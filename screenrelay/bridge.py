"""
Host boundary.

``RelayBridge`` exposes the router as named channels that take plain
arguments and return the ``{success, data?, error?}`` wire shape. No
exception object crosses this layer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from screenrelay.core.notifications import (
    BroadcastSink,
    FanoutSink,
    LoggingSink,
    NotificationSink,
)
from screenrelay.core.registry import SessionRegistry
from screenrelay.core.router import SessionRouter
from screenrelay.core.settings import SettingsStore
from screenrelay.models.result import RelayResult
from screenrelay.providers import RealtimeTransport, create_adapters
from screenrelay.providers.gemini_live import GeminiLiveTransport

logger = logging.getLogger(__name__)

INITIALIZE_MODEL = "initialize-model"
SEND_TEXT_MESSAGE = "send-text-message"
SEND_IMAGE_CONTENT = "send-image-content"
SEND_AUDIO_CONTENT = "send-audio-content"
CLOSE_SESSION = "close-session"
GET_CURRENT_SESSION = "get-current-session"
START_NEW_SESSION = "start-new-session"


def _payload_field(payload: Any, name: str) -> Any:
    if isinstance(payload, dict):
        return payload.get(name)
    return None


class RelayBridge:
    """Channel-style facade over a ``SessionRouter``."""

    def __init__(self, router: SessionRouter, broadcast: BroadcastSink | None = None):
        self.router = router
        self.broadcast = broadcast
        self._closed = False
        self._channels: dict[str, Callable[..., Awaitable[dict[str, Any]]]] = {
            INITIALIZE_MODEL: self.initialize_model,
            SEND_TEXT_MESSAGE: self.send_text_message,
            SEND_IMAGE_CONTENT: self.send_image_content,
            SEND_AUDIO_CONTENT: self.send_audio_content,
            CLOSE_SESSION: self.close_session,
            GET_CURRENT_SESSION: self.get_current_session,
            START_NEW_SESSION: self.start_new_session,
        }

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    async def handle(self, channel: str, *args: Any, **kwargs: Any) -> dict[str, Any]:
        """Dispatch a channel call by name."""
        handler = self._channels.get(channel)
        if handler is None:
            return RelayResult.fail(f"Unknown channel: {channel}").to_wire()
        try:
            return await handler(*args, **kwargs)
        except TypeError as e:
            logger.warning("Bad arguments for %s: %s", channel, e)
            return RelayResult.fail(f"Invalid arguments for {channel}").to_wire()

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def initialize_model(
        self,
        api_key: str | None = None,
        custom_prompt: str = "",
        profile: str = "interview",
        language: str = "en-US",
        model_id: str | None = None,
    ) -> dict[str, Any]:
        if not isinstance(api_key, str):
            api_key = None
        result = await self.router.initialize(
            api_key,
            model_id=model_id,
            custom_prompt=custom_prompt,
            profile=profile,
            language=language,
        )
        return result.to_wire()

    async def send_text_message(self, text: str | None = None) -> dict[str, Any]:
        return (await self.router.send_text(text)).to_wire()

    async def send_image_content(self, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        return (await self.router.send_image(_payload_field(payload, "data"))).to_wire()

    async def send_audio_content(self, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        result = await self.router.send_audio(
            _payload_field(payload, "data"), _payload_field(payload, "mimeType")
        )
        return result.to_wire()

    async def close_session(self) -> dict[str, Any]:
        return (await self.router.close()).to_wire()

    async def get_current_session(self) -> dict[str, Any]:
        return self.router.get_current_session().to_wire()

    async def start_new_session(self) -> dict[str, Any]:
        return self.router.start_new_session().to_wire()

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    def export_conversation(self, fmt: str = "markdown") -> str:
        return self.router.log.export(fmt)

    def status(self) -> dict[str, Any]:
        return self.router.status()

    async def aclose(self) -> None:
        """Close every session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.router.shutdown()
        logger.info("All sessions cleaned up")

    cleanup_all_sessions = aclose


def build_bridge(
    store: SettingsStore | None = None,
    *,
    realtime_transport: RealtimeTransport | None = None,
    http_transport=None,
    sink: NotificationSink | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RelayBridge:
    """
    Wire settings, adapters, registry and router into a bridge.

    Args:
        store: Settings store; the provider selector reads from it on every call
        realtime_transport: Connection factory for the streaming provider
            (defaults to Gemini Live through google-genai)
        http_transport: httpx transport for the session-based HTTP provider
        sink: Extra notification sink (logging and broadcast are always attached)
        sleep: Delay function for reconnection backoff
    """
    store = store or SettingsStore()
    settings = store.load()
    if realtime_transport is None:
        realtime_transport = GeminiLiveTransport()
    broadcast = BroadcastSink()
    sinks: list[NotificationSink] = [LoggingSink(), broadcast]
    if sink is not None:
        sinks.append(sink)

    registry = SessionRegistry(create_adapters(settings, realtime_transport, http_transport))
    router = SessionRouter(
        registry,
        store.current_provider,
        sink=FanoutSink(*sinks),
        settings=settings,
        sleep=sleep,
    )
    return RelayBridge(router, broadcast=broadcast)
