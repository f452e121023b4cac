"""
Streaming realtime adapter.

Talks to a long-lived bidirectional connection supplied by a
``RealtimeTransport``. The vendor wire protocol lives entirely inside the
transport; this adapter only pushes inputs onto the live connection,
accumulates streamed text until the backend marks a turn complete, and
reports unexpected connection loss.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from screenrelay.core.conversation import AUDIO_INPUT_SUMMARY
from screenrelay.core.errors import (
    BackendError,
    NetworkError,
    NotActiveError,
    RelayError,
)
from screenrelay.core.prompts import format_speaker_results
from screenrelay.models.session import Capability, Provider, Session, SessionParams
from screenrelay.providers.base import DEFAULT_AUDIO_MIME, ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass
class RealtimeEvent:
    """One message received on a realtime connection."""

    text: str | None = None
    input_transcription: str | None = None
    # Diarized fragments: [{"transcript": ..., "speakerId": 1}, ...]
    speaker_results: list[dict[str, Any]] | None = None
    turn_complete: bool = False


class RealtimeConnection(Protocol):
    """A live connection. ``events()`` ends when the backend closes it."""

    async def send(self, payload: dict[str, Any]) -> None: ...

    def events(self) -> AsyncIterator[RealtimeEvent]: ...

    async def close(self) -> None: ...


class RealtimeTransport(Protocol):
    """Opens realtime connections for a vendor."""

    async def connect(
        self, *, api_key: str, model: str, system_prompt: str, language: str
    ) -> RealtimeConnection: ...


@dataclass(eq=False)
class _LiveState:
    """Per-session runtime state kept in ``Session.handle``."""

    connection: RealtimeConnection
    reader: asyncio.Task | None = None
    pending: asyncio.Future | None = None
    buffer: list[str] = field(default_factory=list)
    transcription: list[str] = field(default_factory=list)
    closing: bool = False


class StreamingRealtimeAdapter(ProviderAdapter):
    """Realtime multimodal sessions over a persistent connection."""

    provider = Provider.STREAMING_REALTIME

    def __init__(self, settings=None, prompt_builder=None, transport: RealtimeTransport | None = None):
        super().__init__(settings, prompt_builder)
        self.transport = transport
        self.search_enabled = self.settings.search_enabled

    async def initialize(self, params: SessionParams, is_reconnection: bool = False) -> Session:
        self._validate_params(params)
        if self.transport is None:
            raise BackendError(f"No realtime transport configured for {self.name}")

        session = self._build_session(params)
        model = session.model_id or self.settings.realtime_model
        session.model_id = model
        try:
            connection = await self._with_timeout(
                self.transport.connect(
                    api_key=params.credentials.get_secret_value(),
                    model=model,
                    system_prompt=session.system_prompt,
                    language=params.language,
                ),
                self.settings.init_timeout,
                "connect",
            )
        except RelayError:
            raise
        except (ConnectionError, OSError) as e:
            raise NetworkError(f"Cannot connect to {self.name}: {e}", original=e) from e
        except Exception as e:
            raise BackendError(f"{self.name} rejected the session: {e}", original=e) from e

        state = _LiveState(connection=connection)
        session.handle = state
        state.reader = asyncio.get_running_loop().create_task(
            self._read_events(session), name=f"{self.provider.value}-reader"
        )
        logger.info(
            "%s live session %s (model %s)",
            self.name,
            "reconnected" if is_reconnection else "connected",
            model,
        )
        return session

    async def send_text(self, text: str, session: Session) -> str:
        self._require(session, Capability.TEXT)
        return await self._push_and_wait(session, {"text": text}, self.settings.text_timeout)

    async def send_image(self, image_b64: str, session: Session) -> str:
        self._require(session, Capability.IMAGE)
        payload = {"media": {"data": image_b64, "mimeType": "image/jpeg"}}
        return await self._push_and_wait(session, payload, self.settings.image_timeout)

    async def send_audio(
        self, audio_b64: str, session: Session, mime_type: str = DEFAULT_AUDIO_MIME
    ) -> str:
        """Push an audio chunk. Replies to speech arrive later as unsolicited turns."""
        self._require(session, Capability.AUDIO)
        payload = {"audio": {"data": audio_b64, "mimeType": mime_type or DEFAULT_AUDIO_MIME}}
        await self._push(session, payload, self.settings.text_timeout)
        return ""

    async def close(self, session: Session) -> None:
        session.deactivate()
        state: _LiveState | None = session.handle
        if state is None or state.closing:
            return
        state.closing = True

        if state.pending is not None and not state.pending.done():
            state.pending.set_exception(NotActiveError(f"{self.name} session closed"))
        if state.reader is not None and state.reader is not asyncio.current_task():
            state.reader.cancel()
        try:
            await state.connection.close()
        except Exception as e:
            logger.warning("Error closing %s connection: %s", self.name, e)

    # ------------------------------------------------------------------

    async def _push(self, session: Session, payload: dict[str, Any], timeout: float) -> None:
        state: _LiveState = session.handle
        try:
            await self._with_timeout(state.connection.send(payload), timeout, "send")
        except RelayError:
            raise
        except Exception as e:
            raise NetworkError(f"{self.name} stream error: {e}", original=e) from e

    async def _push_and_wait(
        self, session: Session, payload: dict[str, Any], timeout: float
    ) -> str:
        state: _LiveState = session.handle
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        state.pending = future
        try:
            await self._push(session, payload, timeout)
            return await self._with_timeout(asyncio.shield(future), timeout, "reply")
        finally:
            if state.pending is future:
                state.pending = None
            if not future.done():
                future.cancel()

    async def _read_events(self, session: Session) -> None:
        state: _LiveState = session.handle
        error: Exception | None = None
        try:
            async for event in state.connection.events():
                self._handle_event(session, state, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if state.closing or not session.active:
            return

        # The backend went away without us closing it
        lost = NetworkError(
            f"{self.name} connection lost" + (f": {error}" if error else ""),
            original=error,
        )
        logger.warning("%s", lost)
        session.active = False
        if state.pending is not None and not state.pending.done():
            state.pending.set_exception(lost)
        if self.on_disconnect is not None:
            self.on_disconnect(session, lost)

    def _handle_event(self, session: Session, state: _LiveState, event: RealtimeEvent) -> None:
        if event.input_transcription:
            state.transcription.append(event.input_transcription.strip())
        if event.speaker_results:
            state.transcription.append(format_speaker_results(event.speaker_results).strip())
        if event.text:
            state.buffer.append(event.text)
        if not event.turn_complete:
            return

        response = "".join(state.buffer).strip()
        transcript = " ".join(t for t in state.transcription if t)
        state.buffer.clear()
        state.transcription.clear()

        if state.pending is not None and not state.pending.done():
            state.pending.set_result(response)
        elif response and self.on_turn is not None and session.active:
            self.on_turn(session, transcript or AUDIO_INPUT_SUMMARY, response)
