"""
Session-based HTTP adapter for the third provider (Grok).

The backend keeps a server-side session: initialize creates it and every
send posts to that session's endpoints.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from screenrelay.core.errors import BackendError, from_httpx_error
from screenrelay.models.session import Capability, Provider, Session, SessionParams
from screenrelay.providers.base import DEFAULT_AUDIO_MIME, ProviderAdapter

logger = logging.getLogger(__name__)


class PlaceholderAdapter(ProviderAdapter):
    """Remote-session REST client."""

    provider = Provider.PLACEHOLDER_THIRD

    def __init__(
        self,
        settings=None,
        prompt_builder=None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(settings, prompt_builder)
        self.base_url = self.settings.placeholder_base_url.rstrip("/")
        self.search_enabled = self.settings.search_enabled
        self._transport = transport

    def _headers(self, session_or_key: Session | str) -> dict[str, str]:
        if isinstance(session_or_key, Session):
            key = session_or_key.credentials.get_secret_value()
        else:
            key = session_or_key
        return {"Content-Type": "application/json", "Authorization": f"Bearer {key}"}

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
        during_init: bool = False,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=timeout, transport=self._transport
            ) as client:
                response = await self._with_timeout(
                    client.post(path, json=payload, headers=headers), timeout, "request"
                )
                response.raise_for_status()
                data = response.json()
        except ValueError as e:
            raise BackendError(f"Invalid response from {self.name}: {e}", original=e) from e
        except Exception as e:
            error = from_httpx_error(self.name, e, during_init=during_init)
            logger.error("%s %s failed: %s", self.name, path, error)
            raise error from e

        if not isinstance(data, dict):
            raise BackendError(f"Invalid response from {self.name}: expected an object")
        return data

    async def initialize(self, params: SessionParams, is_reconnection: bool = False) -> Session:
        self._validate_params(params)
        session = self._build_session(params)
        session.model_id = session.model_id or self.settings.placeholder_model

        data = await self._post(
            "/sessions",
            {
                "model": session.model_id,
                "prompt": session.system_prompt,
                "language": params.language,
            },
            self._headers(params.credentials.get_secret_value()),
            self.settings.init_timeout,
            during_init=True,
        )
        remote_id = data.get("sessionId") or data.get("session_id")
        if not remote_id:
            raise BackendError(f"{self.name} did not return a session id")
        session.handle = str(remote_id)
        logger.info("%s session %s created (model %s)", self.name, remote_id, session.model_id)
        return session

    async def _send(self, session: Session, kind: str, payload: dict[str, Any], timeout: float) -> str:
        data = await self._post(
            f"/sessions/{session.handle}/{kind}", payload, self._headers(session), timeout
        )
        reply = data.get("reply") or data.get("text") or ""
        return str(reply).strip()

    async def send_text(self, text: str, session: Session) -> str:
        self._require(session, Capability.TEXT)
        return await self._send(session, "text", {"text": text}, self.settings.text_timeout)

    async def send_image(self, image_b64: str, session: Session) -> str:
        self._require(session, Capability.IMAGE)
        return await self._send(
            session,
            "image",
            {"image": image_b64, "mimeType": "image/jpeg"},
            self.settings.image_timeout,
        )

    async def send_audio(
        self, audio_b64: str, session: Session, mime_type: str = DEFAULT_AUDIO_MIME
    ) -> str:
        self._require(session, Capability.AUDIO)
        return await self._send(
            session,
            "audio",
            {"audio": audio_b64, "mimeType": mime_type or DEFAULT_AUDIO_MIME},
            self.settings.text_timeout,
        )
