"""
Session router.

Single entry point per operation kind. Resolves the active provider through
an injected selector, dispatches to that provider's slot in the session
registry, and normalizes every outcome into a ``RelayResult``. Successful
text and image replies are recorded in the conversation log and pushed to
the notification sink.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import SecretStr

from screenrelay.core.capabilities import CapabilityGate
from screenrelay.core.conversation import IMAGE_INPUT_SUMMARY, ConversationLog
from screenrelay.core.errors import (
    AuthError,
    BackendError,
    BusyError,
    InvalidInputError,
    NetworkError,
    NotActiveError,
    RelayError,
    UnsupportedCapabilityError,
)
from screenrelay.core.notifications import (
    SESSION_INITIALIZING,
    UPDATE_RESPONSE,
    UPDATE_STATUS,
    LoggingSink,
    NotificationSink,
)
from screenrelay.core.reconnect import ReconnectionSupervisor
from screenrelay.core.registry import ProviderSlot, SessionRegistry
from screenrelay.core.settings import RelaySettings
from screenrelay.models.result import RelayResult
from screenrelay.models.session import Capability, Provider, Session, SessionParams

logger = logging.getLogger(__name__)

ProviderSelector = Callable[[], Provider]

# Failures the caller caused; reported without an error status line
_QUIET_ERRORS = (NotActiveError, UnsupportedCapabilityError, InvalidInputError)


class SessionRouter:
    """
    Routes initialize/send/close calls to the selected provider's adapter.

    Example:
        >>> router = SessionRouter(registry, store.current_provider, sink=sink)
        >>> await router.initialize("key", custom_prompt="", profile="interview")
        >>> result = await router.send_text("hello")
        >>> result.to_wire()
        {'success': True, 'data': 'hi'}
    """

    def __init__(
        self,
        registry: SessionRegistry,
        selector: ProviderSelector,
        *,
        sink: NotificationSink | None = None,
        log: ConversationLog | None = None,
        gate: CapabilityGate | None = None,
        settings: RelaySettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self._select = selector
        self.sink = sink or LoggingSink()
        self.log = log or ConversationLog(self.sink)
        self.gate = gate or CapabilityGate()
        self.settings = settings or RelaySettings()
        self._supervisors: dict[Provider, ReconnectionSupervisor] = {}

        for slot in registry:
            provider = slot.provider
            slot.adapter.bind(
                on_disconnect=lambda session, error, p=provider: self._on_disconnect(p, session, error),
                on_turn=lambda session, summary, reply, p=provider: self._on_unsolicited_turn(
                    p, session, summary, reply
                ),
            )
            if provider.is_streaming:
                self._supervisors[provider] = ReconnectionSupervisor(
                    provider,
                    lambda params, p=provider: self._reconnect(p, params),
                    max_attempts=self.settings.reconnect_max_attempts,
                    base_delay=self.settings.reconnect_base_delay,
                    on_status=self._status,
                    sleep=sleep,
                )
        registry.open()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def active_provider(self) -> Provider:
        return self._select()

    def supervisor(self, provider: Provider) -> ReconnectionSupervisor | None:
        """The reconnection supervisor for a streaming provider, else None."""
        return self._supervisors.get(provider)

    def current(self, provider: Provider | None = None) -> Session | None:
        """The session held for ``provider`` (default: the active provider)."""
        return self.registry.slot(provider or self._select()).session

    def status(self) -> dict[str, Any]:
        """Slot summaries for health and status output."""
        slots = []
        for slot in self.registry:
            info = slot.to_dict()
            sup = self._supervisors.get(slot.provider)
            if sup is not None:
                info["connection"] = sup.connection_state.value
                info["reconnect_attempts"] = sup.attempt_count
            slots.append(info)
        return {
            "provider": self._select().value,
            "sessionId": self.log.session_id,
            "turns": len(self.log.turns),
            "slots": slots,
        }

    def _status(self, message: str) -> None:
        self.sink.emit(UPDATE_STATUS, message)

    # ------------------------------------------------------------------
    # Initialize / close
    # ------------------------------------------------------------------

    async def initialize(
        self,
        credentials: str | SecretStr | None,
        model_id: str | None = None,
        custom_prompt: str = "",
        profile: str = "interview",
        language: str = "en-US",
    ) -> RelayResult:
        """Fresh (manual) initialize of the active provider."""
        provider = self._select()
        slot = self.registry.slot(provider)
        name = provider.display_name

        if slot.initializing:
            return RelayResult.from_error(
                BusyError(f"{name} session is already initializing")
            )

        secret = credentials.get_secret_value() if isinstance(credentials, SecretStr) else credentials
        if not secret or not secret.strip():
            return RelayResult.from_error(AuthError("Invalid API key provided"))

        params = SessionParams(
            credentials=SecretStr(secret.strip()),
            model_id=model_id or self.settings.model_for(provider),
            custom_prompt=custom_prompt or "",
            profile=profile or "interview",
            language=language or "en-US",
        )

        supervisor = self._supervisors.get(provider)
        if supervisor is not None:
            supervisor.begin_manual()

        slot.initializing = True
        self.sink.emit(SESSION_INITIALIZING, True)
        try:
            session = await slot.adapter.initialize(params, is_reconnection=False)
        except RelayError as e:
            logger.error("Failed to initialize %s session: %s", name, e)
            if supervisor is not None:
                supervisor.on_manual_failure()
            self._status(f"Error: {e}")
            return RelayResult.from_error(e)
        except Exception as e:
            logger.exception("Unexpected error initializing %s", name)
            if supervisor is not None:
                supervisor.on_manual_failure()
            error = BackendError(f"{name} initialization failed: {e}", original=e)
            self._status(f"Error: {error}")
            return RelayResult.from_error(error)
        finally:
            slot.initializing = False
            self.sink.emit(SESSION_INITIALIZING, False)

        await self._install(slot, session)
        session_id = self.log.start_new()
        self._status(f"{name} session initialized with model: {session.model_id}")
        if supervisor is not None:
            supervisor.on_fresh_connect(params)
            if not session.active:
                # Dropped before the supervisor was CONNECTED
                supervisor.handle_disconnect(NetworkError(f"{name} connection lost"))

        return RelayResult.success(
            {"provider": provider.value, "model": session.model_id, "sessionId": session_id}
        )

    async def _install(self, slot: ProviderSlot, session: Session) -> None:
        """Make ``session`` the slot's handle and close the one it replaces."""
        previous, slot.session = slot.session, session
        if previous is None or previous is session:
            return
        previous.deactivate()
        try:
            await slot.adapter.close(previous)
        except Exception:
            logger.exception("Error closing replaced %s session", slot.provider.display_name)

    async def _reconnect(self, provider: Provider, params: SessionParams) -> Session | None:
        """Replay ``params``; returns the installed session, or None if abandoned."""
        slot = self.registry.slot(provider)
        session = await slot.adapter.initialize(params, is_reconnection=True)
        supervisor = self._supervisors.get(provider)
        if supervisor is not None and supervisor.last_params is not params:
            # Closed or manually re-initialized while we were connecting
            await slot.adapter.close(session)
            return None
        await self._install(slot, session)
        return session

    async def close(self) -> RelayResult:
        """Close every provider's session. Idempotent; always succeeds."""
        closed = []
        for supervisor in self._supervisors.values():
            supervisor.stop()
        for session in self.registry.active_sessions():
            session.deactivate()
        for slot in self.registry:
            if await self.registry.close_slot(slot.provider):
                logger.info("%s session closed", slot.provider.display_name)
                closed.append(slot.provider.value)
        if closed:
            self._status("Session closed")
        return RelayResult.success({"closed": closed})

    def get_current_session(self) -> RelayResult:
        """The current conversation as ``{sessionId, history}``."""
        return RelayResult.success(self.log.snapshot().to_wire())

    def start_new_session(self) -> RelayResult:
        """Reset the conversation log under a freshly minted session id."""
        return RelayResult.success({"sessionId": self.log.start_new()})

    async def shutdown(self) -> None:
        """Close every provider's session and stop all reconnection."""
        for supervisor in self._supervisors.values():
            supervisor.stop()
        await self.registry.aclose()

    # ------------------------------------------------------------------
    # Sends
    # ------------------------------------------------------------------

    async def send_text(self, text: str) -> RelayResult:
        if not isinstance(text, str) or not text.strip():
            return RelayResult.from_error(InvalidInputError("Invalid text message"))
        text = text.strip()
        return await self._dispatch(Capability.TEXT, text, input_summary=text)

    async def send_image(self, image_b64: str) -> RelayResult:
        error = self._validate_image(image_b64)
        if error is not None:
            return RelayResult.from_error(error)
        return await self._dispatch(Capability.IMAGE, image_b64, input_summary=IMAGE_INPUT_SUMMARY)

    async def send_audio(self, audio_b64: str, mime_type: str | None = None) -> RelayResult:
        """
        Send an audio chunk.

        The capability gate runs first, so a provider without audio rejects
        the call whether or not a session is active. Replies to audio are
        pushed as responses but not recorded as turns here; streaming
        providers deliver them later as unsolicited turns.
        """
        provider = self._select()
        try:
            self.gate.check(provider, Capability.AUDIO)
        except UnsupportedCapabilityError as e:
            return RelayResult.from_error(e)
        if not isinstance(audio_b64, str) or not audio_b64:
            return RelayResult.from_error(InvalidInputError("Invalid audio data"))
        return await self._dispatch(Capability.AUDIO, audio_b64, mime_type=mime_type)

    def _validate_image(self, image_b64: Any) -> InvalidInputError | None:
        if not isinstance(image_b64, str) or len(image_b64) < self.settings.min_image_chars:
            return InvalidInputError("Invalid image data")
        try:
            base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError):
            return InvalidInputError("Invalid image data: not base64")
        return None

    async def _dispatch(
        self,
        capability: Capability,
        payload: str,
        input_summary: str | None = None,
        mime_type: str | None = None,
    ) -> RelayResult:
        provider = self._select()
        name = provider.display_name
        try:
            self.gate.check(provider, capability)
            slot = self.registry.slot(provider)
            session = slot.session
            if session is None or not session.active:
                raise NotActiveError(f"No active {name} session")

            async with slot.send_lock:
                if not session.active:
                    raise NotActiveError(f"No active {name} session")
                reply = await self._call(slot, capability, payload, session, mime_type)

            if not session.active or slot.session is not session:
                # Closed while the call was in flight: discard the reply
                raise NotActiveError(f"{name} session closed before the reply arrived")
        except _QUIET_ERRORS as e:
            logger.debug("%s %s rejected: %s", name, capability.value, e)
            return RelayResult.from_error(e)
        except RelayError as e:
            logger.error("Error sending %s to %s: %s", capability.value, name, e)
            self._status(f"Error: {e}")
            return RelayResult.from_error(e)
        except Exception as e:
            logger.exception("Unexpected error sending %s to %s", capability.value, name)
            error = BackendError(f"{name} error: {e}", original=e)
            self._status(f"Error: {error}")
            return RelayResult.from_error(error)

        if reply:
            self.sink.emit(UPDATE_RESPONSE, reply)
            if input_summary is not None:
                self.log.record(input_summary, reply, provider)
        return RelayResult.success(reply)

    async def _call(
        self,
        slot: ProviderSlot,
        capability: Capability,
        payload: str,
        session: Session,
        mime_type: str | None,
    ) -> str:
        adapter = slot.adapter
        if capability is Capability.TEXT:
            return await adapter.send_text(payload, session)
        if capability is Capability.IMAGE:
            return await adapter.send_image(payload, session)
        if mime_type:
            return await adapter.send_audio(payload, session, mime_type)
        return await adapter.send_audio(payload, session)

    # ------------------------------------------------------------------
    # Adapter callbacks
    # ------------------------------------------------------------------

    def _on_disconnect(self, provider: Provider, session: Session, error: Exception) -> None:
        slot = self.registry.slot(provider)
        if slot.session is not session:
            return
        logger.warning("%s session disconnected: %s", provider.display_name, error)
        supervisor = self._supervisors.get(provider)
        if supervisor is None:
            self._status(f"{provider.display_name} connection lost")
            return
        supervisor.handle_disconnect(error)

    def _on_unsolicited_turn(
        self, provider: Provider, session: Session, input_summary: str, response: str
    ) -> None:
        slot = self.registry.slot(provider)
        if slot.session is not session or not session.active:
            return
        self.sink.emit(UPDATE_RESPONSE, response)
        self.log.record(input_summary, response, provider)
