"""
Stateless chat-completions adapter (OpenRouter through LiteLLM).

There is no backend session: every call is one self-contained request that
re-sends the system prompt. Continuity exists only in the conversation log.
"""

from __future__ import annotations

import logging
from typing import Any

import litellm
from litellm import acompletion

from screenrelay.core.errors import BackendError, from_litellm_error
from screenrelay.models.session import Capability, Provider, Session, SessionParams
from screenrelay.providers.base import ProviderAdapter

# Suppress LiteLLM debug messages (e.g., "Provider List: ...")
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

IMAGE_INSTRUCTION = (
    "Help me with what is on this screen. Give a direct, complete answer. "
    "For a coding question, outline the approach in a few bullet points and then "
    "give the full code. For a multiple-choice question, give the correct option first."
)


class ChatCompletionAdapter(ProviderAdapter):
    """Chat completions over HTTP, one request per send."""

    provider = Provider.CHAT_COMPLETION
    requires_model = True
    # OpenRouter models get search instructions unconditionally
    search_enabled = True

    async def initialize(self, params: SessionParams, is_reconnection: bool = False) -> Session:
        self._validate_params(params)
        session = self._build_session(params)
        logger.info("%s session initialized with model %s", self.name, session.model_id)
        return session

    async def send_text(self, text: str, session: Session) -> str:
        self._require(session, Capability.TEXT)
        messages = [
            {"role": "system", "content": session.system_prompt},
            {"role": "user", "content": text},
        ]
        return await self._complete(session, messages, self.settings.text_timeout)

    async def send_image(self, image_b64: str, session: Session) -> str:
        self._require(session, Capability.IMAGE)
        messages = [
            {"role": "system", "content": session.system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": IMAGE_INSTRUCTION},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                    },
                ],
            },
        ]
        return await self._complete(session, messages, self.settings.image_timeout)

    def _litellm_model(self, session: Session) -> str:
        """Qualify the model id with the LiteLLM routing prefix."""
        model = session.model_id or ""
        prefix = self.settings.chat_provider_prefix.strip("/")
        if prefix and not model.startswith(f"{prefix}/"):
            return f"{prefix}/{model}"
        return model

    async def _complete(
        self, session: Session, messages: list[dict[str, Any]], timeout: float
    ) -> str:
        model = self._litellm_model(session)
        try:
            response = await self._with_timeout(
                acompletion(
                    model=model,
                    messages=messages,
                    api_key=session.credentials.get_secret_value(),
                    timeout=timeout,
                ),
                timeout,
                "request",
            )
        except Exception as e:
            error = from_litellm_error(self.name, session.model_id or model, e)
            logger.error("%s request failed: %s", self.name, error)
            raise error from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise BackendError(f"{self.name} returned an unexpected response shape", original=e) from e
        return (content or "").strip()
