"""Tests for the streaming realtime adapter."""

import asyncio

import pytest
from conftest import FakeTransport, settle

from screenrelay.core.errors import (
    AuthError,
    BackendError,
    NetworkError,
    NotActiveError,
)
from screenrelay.core.settings import RelaySettings
from screenrelay.models.session import Capability, SessionParams
from screenrelay.providers.realtime import RealtimeEvent, StreamingRealtimeAdapter


@pytest.fixture
def adapter(transport):
    return StreamingRealtimeAdapter(RelaySettings(text_timeout=0.5, image_timeout=0.5), transport=transport)


@pytest.fixture
def params():
    return SessionParams(credentials="live-key", profile="meeting", custom_prompt="Q3 review")


class TestInitialize:
    @pytest.mark.asyncio
    async def test_connects_with_prompt_and_model(self, adapter, transport, params):
        session = await adapter.initialize(params)

        call = transport.calls[0]
        assert call["api_key"] == "live-key"
        assert call["model"] == adapter.settings.realtime_model
        assert call["language"] == "en-US"
        assert "Q3 review" in call["system_prompt"]
        assert session.system_prompt == call["system_prompt"]
        assert session.active
        assert session.capabilities == frozenset(Capability)

    @pytest.mark.asyncio
    async def test_blank_key_rejected_before_connect(self, adapter, transport):
        with pytest.raises(AuthError):
            await adapter.initialize(SessionParams(credentials="  "))
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_no_transport_is_backend_error(self, params):
        with pytest.raises(BackendError):
            await StreamingRealtimeAdapter().initialize(params)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure,expected",
        [
            (ConnectionError("refused"), NetworkError),
            (OSError("unreachable"), NetworkError),
            (AuthError("bad key"), AuthError),
            (RuntimeError("quota exceeded"), BackendError),
        ],
    )
    async def test_connect_failures_are_classified(self, adapter, transport, params, failure, expected):
        transport.failures.append(failure)
        with pytest.raises(expected):
            await adapter.initialize(params)

    @pytest.mark.asyncio
    async def test_connect_timeout_is_network_error(self, params):
        class HangingTransport(FakeTransport):
            async def connect(self, **kwargs):
                await asyncio.sleep(10)

        adapter = StreamingRealtimeAdapter(RelaySettings(init_timeout=0.05), transport=HangingTransport())
        with pytest.raises(NetworkError, match="timed out"):
            await adapter.initialize(params)


class TestSend:
    @pytest.mark.asyncio
    async def test_text_reply_accumulates_chunks(self, adapter, transport, params):
        transport.reply = None
        session = await adapter.initialize(params)
        conn = transport.last

        task = asyncio.create_task(adapter.send_text("explain", session))
        await settle()
        conn.push(RealtimeEvent(text="Part one, "))
        conn.push(RealtimeEvent(text="part two."))
        conn.push(RealtimeEvent(turn_complete=True))

        assert await task == "Part one, part two."
        assert conn.sent == [{"text": "explain"}]

    @pytest.mark.asyncio
    async def test_image_pushed_as_jpeg_media(self, adapter, transport, params):
        session = await adapter.initialize(params)

        reply = await adapter.send_image("aGVsbG8=", session)

        assert reply == "I can see your screen"
        assert transport.last.sent == [{"media": {"data": "aGVsbG8=", "mimeType": "image/jpeg"}}]

    @pytest.mark.asyncio
    async def test_audio_default_mime(self, adapter, transport, params):
        session = await adapter.initialize(params)

        assert await adapter.send_audio("AAAA", session, mime_type=None) == ""
        assert transport.last.sent == [{"audio": {"data": "AAAA", "mimeType": "audio/pcm;rate=24000"}}]

    @pytest.mark.asyncio
    async def test_reply_timeout_is_network_error(self, adapter, transport, params):
        transport.reply = None
        session = await adapter.initialize(params)

        with pytest.raises(NetworkError):
            await adapter.send_text("anyone there?", session)

    @pytest.mark.asyncio
    async def test_send_on_closed_connection_is_network_error(self, adapter, transport, params):
        session = await adapter.initialize(params)
        transport.last.closed = True

        with pytest.raises(NetworkError):
            await adapter.send_text("hello", session)

    @pytest.mark.asyncio
    async def test_send_on_inactive_session(self, adapter, params):
        session = await adapter.initialize(params)
        await adapter.close(session)

        with pytest.raises(NotActiveError):
            await adapter.send_text("hello", session)


class TestUnsolicitedAndDisconnect:
    @pytest.mark.asyncio
    async def test_unsolicited_turn_callback(self, adapter, transport, params):
        turns = []
        adapter.bind(on_turn=lambda session, summary, reply: turns.append((summary, reply)))
        await adapter.initialize(params)
        conn = transport.last

        conn.push(RealtimeEvent(text="Sure, here is the answer."))
        conn.push(RealtimeEvent(turn_complete=True))
        await settle()

        assert turns == [("[Audio]", "Sure, here is the answer.")]

    @pytest.mark.asyncio
    async def test_diarized_input_labels_speakers(self, adapter, transport, params):
        turns = []
        adapter.bind(on_turn=lambda session, summary, reply: turns.append((summary, reply)))
        await adapter.initialize(params)
        conn = transport.last

        conn.push(
            RealtimeEvent(
                speaker_results=[
                    {"transcript": "Why this role?", "speakerId": 1},
                    {"transcript": "I like the team", "speakerId": 2},
                ]
            )
        )
        conn.push(RealtimeEvent(text="Mention the product you shipped."))
        conn.push(RealtimeEvent(turn_complete=True))
        await settle()

        assert turns == [
            (
                "[Interviewer]: Why this role?\n[Candidate]: I like the team",
                "Mention the product you shipped.",
            )
        ]

    @pytest.mark.asyncio
    async def test_empty_turn_is_not_reported(self, adapter, transport, params):
        turns = []
        adapter.bind(on_turn=lambda *args: turns.append(args))
        await adapter.initialize(params)

        transport.last.push(RealtimeEvent(turn_complete=True))
        await settle()

        assert turns == []

    @pytest.mark.asyncio
    async def test_unexpected_end_reports_disconnect(self, adapter, transport, params):
        lost = []
        adapter.bind(on_disconnect=lambda session, error: lost.append((session, error)))
        session = await adapter.initialize(params)

        transport.last.drop()
        await settle()

        assert len(lost) == 1
        assert lost[0][0] is session
        assert isinstance(lost[0][1], NetworkError)
        assert session.active is False
        # Replay parameters survive an unexpected disconnect
        assert session.last_params is params

    @pytest.mark.asyncio
    async def test_close_is_not_a_disconnect(self, adapter, transport, params):
        lost = []
        adapter.bind(on_disconnect=lambda session, error: lost.append(error))
        session = await adapter.initialize(params)

        await adapter.close(session)
        await adapter.close(session)
        await settle()

        assert lost == []
        assert session.active is False
        assert session.last_params is None
        assert transport.last.closed

    @pytest.mark.asyncio
    async def test_close_fails_pending_send(self, adapter, transport, params):
        transport.reply = None
        session = await adapter.initialize(params)

        task = asyncio.create_task(adapter.send_text("question", session))
        await settle()
        await adapter.close(session)

        with pytest.raises(NotActiveError):
            await task
