"""
Common contract implemented by every provider adapter.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

from screenrelay.core.errors import (
    AuthError,
    InvalidModelError,
    NetworkError,
    NotActiveError,
    UnsupportedCapabilityError,
)
from screenrelay.core.prompts import get_system_prompt
from screenrelay.core.settings import RelaySettings
from screenrelay.models.session import Capability, Provider, Session, SessionParams

logger = logging.getLogger(__name__)

T = TypeVar("T")

PromptBuilder = Callable[[str, str, bool], str]
DisconnectHandler = Callable[[Session, Exception], None]
TurnHandler = Callable[[Session, str, str], None]

DEFAULT_AUDIO_MIME = "audio/pcm;rate=24000"


class ProviderAdapter(ABC):
    """
    Normalizes one backend's session lifecycle behind a uniform contract.

    Every failure leaves an adapter as a ``RelayError`` subclass; the router
    never sees SDK exceptions, HTTP status codes or stream errors.
    """

    provider: Provider
    requires_model: bool = False
    search_enabled: bool = True

    def __init__(
        self,
        settings: RelaySettings | None = None,
        prompt_builder: PromptBuilder | None = None,
    ):
        self.settings = settings or RelaySettings()
        self._prompt_builder = prompt_builder or get_system_prompt
        self.on_disconnect: DisconnectHandler | None = None
        self.on_turn: TurnHandler | None = None

    @property
    def name(self) -> str:
        return self.provider.display_name

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.provider.capabilities

    def bind(
        self,
        on_disconnect: DisconnectHandler | None = None,
        on_turn: TurnHandler | None = None,
    ) -> None:
        """Attach router callbacks for connection loss and unsolicited turns."""
        self.on_disconnect = on_disconnect
        self.on_turn = on_turn

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def initialize(self, params: SessionParams, is_reconnection: bool = False) -> Session:
        """Create a session. Raises AuthError, InvalidModelError, NetworkError or BackendError."""

    @abstractmethod
    async def send_text(self, text: str, session: Session) -> str:
        """Send text and return the reply."""

    @abstractmethod
    async def send_image(self, image_b64: str, session: Session) -> str:
        """Send a base64 JPEG and return the reply."""

    async def send_audio(
        self, audio_b64: str, session: Session, mime_type: str = DEFAULT_AUDIO_MIME
    ) -> str:
        """Send a base64 audio chunk. Providers without audio reject it."""
        raise UnsupportedCapabilityError(f"Audio input not supported with {self.name} model.")

    async def close(self, session: Session) -> None:
        """Close the session. Idempotent; always leaves it inactive."""
        session.deactivate()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_params(self, params: SessionParams) -> None:
        """Reject blank credentials or a missing model before any I/O."""
        if not params.credentials.get_secret_value().strip():
            raise AuthError(f"Invalid API key provided for {self.name}")
        if self.requires_model and not (params.model_id or "").strip():
            raise InvalidModelError(f"A model id is required for {self.name}")

    def _build_session(self, params: SessionParams, handle: object = None) -> Session:
        system_prompt = self._prompt_builder(
            params.profile, params.custom_prompt, self.search_enabled
        )
        return Session(
            provider=self.provider,
            params=params,
            system_prompt=system_prompt,
            model_id=(params.model_id or "").strip() or None,
            handle=handle,
        )

    def _require(self, session: Session | None, capability: Capability) -> Session:
        """Check the send preconditions: a live session that accepts ``capability``."""
        if capability not in self.capabilities:
            raise UnsupportedCapabilityError(
                f"{capability.value.capitalize()} input not supported with {self.name} model."
            )
        if session is None or not session.active:
            raise NotActiveError(f"No active {self.name} session")
        return session

    async def _with_timeout(self, awaitable: Awaitable[T], timeout: float, what: str) -> T:
        """Await with a bound; a timeout becomes a NetworkError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError as e:
            logger.warning("%s %s timed out after %.1fs", self.name, what, timeout)
            raise NetworkError(f"{self.name} {what} timed out after {timeout:.0f}s", original=e) from e
