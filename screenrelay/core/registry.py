"""
Session registry: one owned slot per provider.

Replaces ambient "current session" globals. The router receives a registry
at construction; slots persist independently, so switching the active
provider never tears down another provider's session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from screenrelay.models.session import Provider, Session

if TYPE_CHECKING:
    from screenrelay.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProviderSlot:
    """The adapter and current session handle for one provider."""

    provider: Provider
    adapter: ProviderAdapter
    session: Session | None = None
    initializing: bool = False
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def active(self) -> bool:
        return self.session is not None and self.session.active

    def to_dict(self) -> dict[str, Any]:
        """Summary for status output. Never includes credentials."""
        return {
            "provider": self.provider.value,
            "name": self.provider.display_name,
            "active": self.active,
            "initializing": self.initializing,
            "model": self.session.model_id if self.session else None,
            "capabilities": sorted(c.value for c in self.provider.capabilities),
        }


class SessionRegistry:
    """
    Maps each ``Provider`` to its ``ProviderSlot``.

    Lifecycle is explicit: ``open()`` at process start, ``aclose()`` at stop.
    """

    def __init__(self, adapters: dict[Provider, ProviderAdapter]):
        self._slots: dict[Provider, ProviderSlot] = {
            provider: ProviderSlot(provider=provider, adapter=adapter)
            for provider, adapter in adapters.items()
        }
        self._open = False

    def __contains__(self, provider: Provider) -> bool:
        return provider in self._slots

    def __iter__(self):
        return iter(self._slots.values())

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        logger.debug("Session registry opened with %d providers", len(self._slots))

    def slot(self, provider: Provider) -> ProviderSlot:
        """The slot for ``provider``. Raises KeyError if no adapter is registered."""
        try:
            return self._slots[provider]
        except KeyError:
            raise KeyError(f"No adapter registered for {provider.display_name}") from None

    def active_sessions(self) -> list[Session]:
        return [slot.session for slot in self._slots.values() if slot.active]

    async def close_slot(self, provider: Provider) -> bool:
        """
        Close and discard the session held for ``provider``.

        Returns:
            True if a session was held
        """
        slot = self.slot(provider)
        session, slot.session = slot.session, None
        if session is None:
            return False
        session.deactivate()
        try:
            await slot.adapter.close(session)
        except Exception:
            logger.exception("Error closing %s session", provider.display_name)
        return True

    async def aclose(self) -> None:
        """Close every held session."""
        # Deactivate everything first so no in-flight send can record after shutdown
        sessions = []
        for slot in self._slots.values():
            if slot.session is not None:
                slot.session.deactivate()
                sessions.append((slot, slot.session))
                slot.session = None
        for slot, session in sessions:
            try:
                await slot.adapter.close(session)
            except Exception:
                logger.exception("Error closing %s session", slot.provider.display_name)
        self._open = False
        logger.debug("Session registry closed (%d sessions)", len(sessions))
