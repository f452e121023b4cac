"""
Reconnection supervisor for streaming-session providers.

When a connected streaming session drops with a network failure, the
supervisor replays the parameters of the last fresh initialize with a
fixed delay between attempts, up to ``max_attempts``. Stateless providers
never get a supervisor: each of their calls is independent.

State machine::

    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTED -> CONNECTING | FAILED
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from screenrelay.core.errors import NetworkError, RelayError
from screenrelay.models.session import Provider, SessionParams

logger = logging.getLogger(__name__)

ReconnectFn = Callable[[SessionParams], Awaitable[Any]]
StatusFn = Callable[[str], None]


class ConnectionState(str, Enum):
    """Supervisor view of a streaming provider's connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass
class ReconnectionState:
    """Attempt bookkeeping. ``last_params`` is written only by a fresh initialize."""

    attempt_count: int = 0
    max_attempts: int = 3
    base_delay: float = 2.0
    last_params: SessionParams | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts


class ReconnectionSupervisor:
    """Bounded, fixed-interval reconnection for one streaming provider."""

    def __init__(
        self,
        provider: Provider,
        reconnect: ReconnectFn,
        *,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        on_status: StatusFn | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the supervisor.

        Args:
            provider: The streaming provider being supervised
            reconnect: Re-runs initialize with ``is_reconnection=True`` and
                returns the new session (or None)
            max_attempts: Automatic attempts before giving up
            base_delay: Seconds to wait before every attempt (no growth)
            on_status: Receives user-facing status lines
            sleep: Delay function, replaceable in tests
        """
        self.provider = provider
        self._reconnect = reconnect
        self._on_status = on_status
        self._sleep = sleep
        self.state = ReconnectionState(max_attempts=max_attempts, base_delay=base_delay)
        self.connection_state = ConnectionState.IDLE
        self._task: asyncio.Task | None = None

    @property
    def attempt_count(self) -> int:
        return self.state.attempt_count

    @property
    def last_params(self) -> SessionParams | None:
        return self.state.last_params

    @property
    def reconnecting(self) -> bool:
        return self._task is not None and not self._task.done()

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(message)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            if self._task is not asyncio.current_task():
                self._task.cancel()
        self._task = None

    # ------------------------------------------------------------------
    # Manual lifecycle
    # ------------------------------------------------------------------

    def begin_manual(self) -> None:
        """A fresh initialize is starting; abandon any automatic retry."""
        self._cancel_task()
        self.connection_state = ConnectionState.CONNECTING

    def on_fresh_connect(self, params: SessionParams) -> None:
        """A fresh initialize succeeded: reset attempts and remember its params."""
        self.state.attempt_count = 0
        self.state.last_params = params
        self.connection_state = ConnectionState.CONNECTED
        logger.debug("%s supervisor armed", self.provider.display_name)

    def on_manual_failure(self) -> None:
        """A fresh initialize failed; nothing to reconnect to."""
        if self.connection_state is ConnectionState.CONNECTING:
            self.connection_state = ConnectionState.IDLE

    def stop(self) -> None:
        """Explicit close: cancel retries and forget the replay parameters."""
        self._cancel_task()
        self.state.last_params = None
        self.connection_state = ConnectionState.IDLE

    async def wait(self) -> None:
        """Wait for a running reconnection loop to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Automatic recovery
    # ------------------------------------------------------------------

    def handle_disconnect(self, error: Exception) -> bool:
        """
        React to an unexpected disconnect.

        Returns:
            True if a reconnection loop was started
        """
        if self.connection_state is not ConnectionState.CONNECTED:
            logger.debug(
                "%s disconnect ignored in state %s",
                self.provider.display_name,
                self.connection_state.value,
            )
            return False
        if self.state.last_params is None:
            self.connection_state = ConnectionState.IDLE
            return False

        name = self.provider.display_name
        if not isinstance(error, NetworkError):
            self.connection_state = ConnectionState.FAILED
            self._status(f"{name} session failed: {error}")
            return False

        self.connection_state = ConnectionState.DISCONNECTED
        if self.state.exhausted:
            self._fail()
            return False

        logger.warning("%s connection lost: %s", name, error)
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"{self.provider.value}-reconnect"
        )
        return True

    def _fail(self) -> None:
        self.connection_state = ConnectionState.FAILED
        logger.error(
            "%s reconnection failed after %d attempts",
            self.provider.display_name,
            self.state.max_attempts,
        )
        self._status(
            f"Session lost after {self.state.max_attempts} reconnection attempts. "
            "Please initialize a new session."
        )

    async def _run(self) -> None:
        name = self.provider.display_name
        while not self.state.exhausted:
            await self._sleep(self.state.base_delay)
            params = self.state.last_params
            if params is None or self.connection_state is not ConnectionState.DISCONNECTED:
                return

            self.state.attempt_count += 1
            self.connection_state = ConnectionState.CONNECTING
            self._status(
                f"Reconnecting... (attempt {self.state.attempt_count}/{self.state.max_attempts})"
            )
            try:
                session = await self._reconnect(params)
            except NetworkError as e:
                logger.warning(
                    "%s reconnection attempt %d failed: %s", name, self.state.attempt_count, e
                )
                self.connection_state = ConnectionState.DISCONNECTED
                continue
            except RelayError as e:
                logger.error("%s reconnection aborted: %s", name, e)
                self.connection_state = ConnectionState.FAILED
                self._status(f"Reconnection failed: {e}")
                return
            except Exception as e:
                logger.exception("%s reconnection crashed", name)
                self.connection_state = ConnectionState.FAILED
                self._status(f"Reconnection failed: {e}")
                return

            if getattr(session, "active", True) is False:
                # Lost again while we were still CONNECTING
                logger.warning(
                    "%s dropped right after reconnection attempt %d",
                    name,
                    self.state.attempt_count,
                )
                self.connection_state = ConnectionState.DISCONNECTED
                continue

            self.connection_state = ConnectionState.CONNECTED
            logger.info("%s reconnected on attempt %d", name, self.state.attempt_count)
            self._status("Session reconnected")
            return

        self._fail()
