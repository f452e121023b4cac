"""
Gemini Live transport for the streaming realtime adapter.

Uses the official google-genai SDK (``client.aio.live.connect``) so the
websocket protocol stays inside the vendor library. Inputs arrive as the
adapter's plain payload dicts and are forwarded with
``send_realtime_input``; server messages are flattened into
``RealtimeEvent`` objects.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from screenrelay.core.errors import AuthError
from screenrelay.providers.realtime import RealtimeEvent

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


def _default_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def _blob(media: dict[str, Any], default_mime: str) -> types.Blob:
    return types.Blob(
        data=base64.b64decode(media["data"]),
        mime_type=media.get("mimeType") or default_mime,
    )


def to_event(message: Any) -> RealtimeEvent | None:
    """Flatten one ``LiveServerMessage``; None when it carries nothing we use."""
    content = getattr(message, "server_content", None)
    if content is None:
        return None

    texts = []
    model_turn = getattr(content, "model_turn", None)
    for part in getattr(model_turn, "parts", None) or []:
        if getattr(part, "text", None):
            texts.append(part.text)

    transcription = getattr(content, "input_transcription", None)
    event = RealtimeEvent(
        text="".join(texts) or None,
        input_transcription=getattr(transcription, "text", None) or None,
        turn_complete=bool(getattr(content, "turn_complete", False)),
    )
    if event.text is None and event.input_transcription is None and not event.turn_complete:
        return None
    return event


class GeminiLiveConnection:
    """One open Live API session."""

    def __init__(self, context: Any, session: Any):
        self._context = context
        self._session = session
        self._closed = False

    async def send(self, payload: dict[str, Any]) -> None:
        if "text" in payload:
            await self._session.send_realtime_input(text=payload["text"])
        elif "media" in payload:
            await self._session.send_realtime_input(media=_blob(payload["media"], "image/jpeg"))
        elif "audio" in payload:
            await self._session.send_realtime_input(audio=_blob(payload["audio"], "audio/pcm"))
        else:
            raise ValueError(f"Unsupported realtime payload: {sorted(payload)}")

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        # receive() ends after each completed turn; an empty round means the socket closed
        while not self._closed:
            received = False
            async for message in self._session.receive():
                received = True
                event = to_event(message)
                if event is not None:
                    yield event
            if not received:
                return

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._context.__aexit__(None, None, None)


class GeminiLiveTransport:
    """``RealtimeTransport`` backed by ``google.genai``."""

    def __init__(self, client_factory: ClientFactory | None = None):
        self._client_factory = client_factory or _default_client

    def _config(self, system_prompt: str, language: str) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.TEXT],
            system_instruction=types.Content(parts=[types.Part(text=system_prompt)]),
            speech_config=types.SpeechConfig(language_code=language),
            input_audio_transcription=types.AudioTranscriptionConfig(),
        )

    async def connect(
        self, *, api_key: str, model: str, system_prompt: str, language: str
    ) -> GeminiLiveConnection:
        client = self._client_factory(api_key)
        context = client.aio.live.connect(model=model, config=self._config(system_prompt, language))
        try:
            session = await context.__aenter__()
        except genai_errors.APIError as e:
            if e.code in (401, 403):
                raise AuthError(f"Authentication failed for Gemini: {e.message}", original=e) from e
            raise
        logger.debug("Gemini Live connected (model %s, language %s)", model, language)
        return GeminiLiveConnection(context, session)
