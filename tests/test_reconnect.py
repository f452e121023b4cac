"""Tests for ReconnectionSupervisor, alone and driven by the router."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from conftest import FakeConnection, FakeGrokBackend, FakeTransport, SleepRecorder, settle

from screenrelay.core.errors import AuthError, NetworkError
from screenrelay.core.notifications import UPDATE_STATUS
from screenrelay.core.reconnect import ConnectionState, ReconnectionSupervisor
from screenrelay.core.registry import SessionRegistry
from screenrelay.core.router import SessionRouter
from screenrelay.models.session import Provider, SessionParams
from screenrelay.providers import create_adapters


def make_params(key: str = "key") -> SessionParams:
    return SessionParams(credentials=key, model_id="live-model")


class ScriptedReconnect:
    """Reconnect callable that fails according to a script."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[SessionParams] = []

    async def __call__(self, params: SessionParams) -> None:
        self.calls.append(params)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome is not None:
                raise outcome


@pytest.fixture
def statuses():
    return []


def make_supervisor(reconnect, statuses, sleeper=None, **kwargs):
    return ReconnectionSupervisor(
        Provider.STREAMING_REALTIME,
        reconnect,
        on_status=statuses.append,
        sleep=sleeper or SleepRecorder(),
        **kwargs,
    )


class TestSupervisorStateMachine:
    """Unit tests for the supervisor state machine."""

    def test_starts_idle(self, statuses):
        sup = make_supervisor(ScriptedReconnect(), statuses)
        assert sup.connection_state is ConnectionState.IDLE
        assert sup.attempt_count == 0
        assert sup.last_params is None

    @pytest.mark.asyncio
    async def test_disconnect_ignored_unless_connected(self, statuses):
        reconnect = ScriptedReconnect()
        sup = make_supervisor(reconnect, statuses)

        assert sup.handle_disconnect(NetworkError("lost")) is False
        await sup.wait()
        assert reconnect.calls == []

    @pytest.mark.asyncio
    async def test_successful_reconnect_keeps_count(self, statuses):
        reconnect = ScriptedReconnect(None)
        sleeper = SleepRecorder()
        sup = make_supervisor(reconnect, statuses, sleeper)
        params = make_params()
        sup.on_fresh_connect(params)

        assert sup.handle_disconnect(NetworkError("lost")) is True
        await sup.wait()

        assert reconnect.calls == [params]
        assert reconnect.calls[0] is params
        assert sup.connection_state is ConnectionState.CONNECTED
        assert sup.attempt_count == 1
        assert sleeper.delays == [2.0]
        assert statuses == ["Reconnecting... (attempt 1/3)", "Session reconnected"]

    @pytest.mark.asyncio
    async def test_three_failures_then_failed(self, statuses):
        reconnect = ScriptedReconnect(NetworkError("a"), NetworkError("b"), NetworkError("c"), None)
        sleeper = SleepRecorder()
        sup = make_supervisor(reconnect, statuses, sleeper)
        sup.on_fresh_connect(make_params())

        sup.handle_disconnect(NetworkError("lost"))
        await sup.wait()

        assert len(reconnect.calls) == 3
        assert sup.connection_state is ConnectionState.FAILED
        assert sup.attempt_count == 3
        assert sleeper.delays == [2.0, 2.0, 2.0]
        assert statuses[:3] == [
            "Reconnecting... (attempt 1/3)",
            "Reconnecting... (attempt 2/3)",
            "Reconnecting... (attempt 3/3)",
        ]
        assert "Please initialize a new session" in statuses[-1]

        # No further automatic retries
        assert sup.handle_disconnect(NetworkError("again")) is False
        await sup.wait()
        assert len(reconnect.calls) == 3

    @pytest.mark.asyncio
    async def test_session_dead_on_arrival_counts_as_failure(self, statuses):
        dead = SimpleNamespace(active=False)
        calls = []

        async def reconnect(params):
            calls.append(params)
            return dead

        sup = make_supervisor(reconnect, statuses)
        sup.on_fresh_connect(make_params())

        sup.handle_disconnect(NetworkError("lost"))
        await sup.wait()

        assert len(calls) == 3
        assert sup.connection_state is ConnectionState.FAILED
        assert "Session reconnected" not in statuses

    @pytest.mark.asyncio
    async def test_manual_initialize_resets_count(self, statuses):
        reconnect = ScriptedReconnect(NetworkError("a"), NetworkError("b"), NetworkError("c"))
        sup = make_supervisor(reconnect, statuses)
        sup.on_fresh_connect(make_params("old"))
        sup.handle_disconnect(NetworkError("lost"))
        await sup.wait()
        assert sup.connection_state is ConnectionState.FAILED

        fresh = make_params("new")
        sup.begin_manual()
        sup.on_fresh_connect(fresh)

        assert sup.attempt_count == 0
        assert sup.last_params is fresh
        assert sup.connection_state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_non_network_error_fails_immediately(self, statuses):
        reconnect = ScriptedReconnect(AuthError("bad key"))
        sup = make_supervisor(reconnect, statuses)
        sup.on_fresh_connect(make_params())

        sup.handle_disconnect(NetworkError("lost"))
        await sup.wait()

        assert len(reconnect.calls) == 1
        assert sup.connection_state is ConnectionState.FAILED
        assert statuses[-1] == "Reconnection failed: bad key"

    @pytest.mark.asyncio
    async def test_non_network_disconnect_is_not_retried(self, statuses):
        reconnect = ScriptedReconnect()
        sup = make_supervisor(reconnect, statuses)
        sup.on_fresh_connect(make_params())

        assert sup.handle_disconnect(AuthError("revoked")) is False
        assert sup.connection_state is ConnectionState.FAILED
        assert reconnect.calls == []

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_attempt(self, statuses):
        gate = asyncio.Event()

        async def blocking_sleep(delay):
            await gate.wait()

        reconnect = ScriptedReconnect()
        sup = make_supervisor(reconnect, statuses, blocking_sleep)
        sup.on_fresh_connect(make_params())
        sup.handle_disconnect(NetworkError("lost"))
        await settle()
        assert sup.reconnecting

        sup.stop()
        gate.set()
        await settle()

        assert reconnect.calls == []
        assert sup.last_params is None
        assert sup.connection_state is ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_zero_max_attempts_fails_on_first_disconnect(self, statuses):
        reconnect = ScriptedReconnect()
        sup = make_supervisor(reconnect, statuses, max_attempts=0)
        sup.on_fresh_connect(make_params())

        assert sup.handle_disconnect(NetworkError("lost")) is False
        assert sup.connection_state is ConnectionState.FAILED
        assert reconnect.calls == []


class TestRouterReconnection:
    """End-to-end reconnection through the router and realtime adapter."""

    @pytest.mark.asyncio
    async def test_reconnects_with_same_params_and_log(self, router, transport, sink, sleeper):
        await router.initialize("key", custom_prompt="ctx", language="de-DE")
        await router.send_text("hello")
        session_id = router.log.session_id
        first = router.current()

        transport.last.drop()
        await settle()
        await router.supervisor(Provider.STREAMING_REALTIME).wait()

        assert len(transport.connections) == 2
        assert transport.calls[1] == transport.calls[0]
        second = router.current()
        assert second is not first
        assert second.active
        assert second.last_params is first.params
        assert router.log.session_id == session_id
        assert len(router.log.turns) == 1
        assert sleeper.delays == [2.0]
        statuses = sink.payloads(UPDATE_STATUS)
        assert "Reconnecting... (attempt 1/3)" in statuses
        assert statuses[-1] == "Session reconnected"

        result = await router.send_text("again")
        assert result.data == "echo: again"
        assert len(router.log.turns) == 2

    @pytest.mark.asyncio
    async def test_exhaustion_then_manual_reset(self, router, transport, sink):
        await router.initialize("key")
        sup = router.supervisor(Provider.STREAMING_REALTIME)
        transport.failures.extend([ConnectionError("down")] * 3)

        transport.last.drop()
        await settle()
        await sup.wait()

        assert len(transport.calls) == 4
        assert sup.connection_state is ConnectionState.FAILED
        assert sup.attempt_count == 3
        assert (await router.send_text("hello")).error_kind == "not_active"
        assert "Please initialize a new session" in sink.payloads(UPDATE_STATUS)[-1]

        result = await router.initialize("key")
        assert result.ok
        assert sup.attempt_count == 0
        assert sup.connection_state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_count_accumulates_across_reconnects(self, router, transport):
        await router.initialize("key")
        sup = router.supervisor(Provider.STREAMING_REALTIME)

        for expected in (1, 2, 3):
            transport.last.drop()
            await settle()
            await sup.wait()
            assert sup.attempt_count == expected
            assert sup.connection_state is ConnectionState.CONNECTED

        calls_before = len(transport.calls)
        transport.last.drop()
        await settle()
        await sup.wait()

        assert sup.connection_state is ConnectionState.FAILED
        assert len(transport.calls) == calls_before

    @pytest.mark.asyncio
    async def test_drop_fails_pending_send(self, router, transport):
        transport.reply = None
        await router.initialize("key")

        pending = asyncio.create_task(router.send_text("question"))
        await settle()
        transport.last.drop()
        result = await pending
        await settle()
        await router.supervisor(Provider.STREAMING_REALTIME).wait()

        assert result.error_kind == "network"
        assert router.log.turns == []
        assert router.current().active

    @pytest.mark.asyncio
    async def test_close_during_reconnect_installs_nothing(self, router, transport):
        await router.initialize("key")
        sup = router.supervisor(Provider.STREAMING_REALTIME)
        gate = asyncio.Event()
        original = transport.connect

        async def slow_connect(**kwargs):
            await gate.wait()
            return await original(**kwargs)

        transport.connect = slow_connect
        transport.last.drop()
        await settle(10)
        assert sup.connection_state is ConnectionState.CONNECTING

        await router.close()
        gate.set()
        await settle(10)

        assert router.current() is None
        assert sup.connection_state is ConnectionState.IDLE
        assert sup.last_params is None

    @pytest.mark.asyncio
    async def test_stateless_providers_have_no_supervisor(self, router):
        assert router.supervisor(Provider.CHAT_COMPLETION) is None
        assert router.supervisor(Provider.PLACEHOLDER_THIRD) is None


class SlowClosingConnection(FakeConnection):
    """Connection whose close() yields to the event loop before finishing."""

    async def close(self) -> None:
        await asyncio.sleep(0)
        await super().close()


class DropOnConnectTransport(FakeTransport):
    """Every connection after the first is already gone when handed out."""

    async def connect(self, **kwargs):
        self.calls.append(kwargs)
        conn = SlowClosingConnection(self.reply)
        if self.connections:
            conn.drop()
        self.connections.append(conn)
        return conn


class TestDropDuringHandshake:
    """A stream that dies while the replaced session is still closing."""

    @pytest.fixture
    def flaky(self):
        return DropOnConnectTransport()

    @pytest.fixture
    def flaky_router(self, settings, sink, flaky):
        adapters = create_adapters(settings, flaky, httpx.MockTransport(FakeGrokBackend()))
        return SessionRouter(
            SessionRegistry(adapters),
            lambda: Provider.STREAMING_REALTIME,
            sink=sink,
            settings=settings,
            sleep=SleepRecorder(),
        )

    @pytest.mark.asyncio
    async def test_reconnect_drops_until_failed(self, flaky_router, flaky, sink):
        await flaky_router.initialize("key")
        sup = flaky_router.supervisor(Provider.STREAMING_REALTIME)

        flaky.connections[0].drop()
        await settle()
        await sup.wait()

        assert len(flaky.connections) == 4
        assert sup.connection_state is ConnectionState.FAILED
        assert sup.attempt_count == 3
        statuses = sink.payloads(UPDATE_STATUS)
        assert "Session reconnected" not in statuses
        assert "Please initialize a new session" in statuses[-1]

    @pytest.mark.asyncio
    async def test_manual_reinitialize_that_drops_is_retried(self, flaky_router, flaky):
        await flaky_router.initialize("key")
        sup = flaky_router.supervisor(Provider.STREAMING_REALTIME)

        result = await flaky_router.initialize("key")
        await settle()
        await sup.wait()

        assert result.ok
        assert not flaky_router.current().active
        assert len(flaky.connections) == 5
        assert sup.connection_state is ConnectionState.FAILED
