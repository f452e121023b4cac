"""
Pytest fixtures for screenrelay tests.
"""

import asyncio
import base64
import json
import os
from unittest.mock import MagicMock

import httpx
import pytest

from screenrelay.core.notifications import RecordingSink
from screenrelay.core.registry import SessionRegistry
from screenrelay.core.router import SessionRouter
from screenrelay.core.settings import RelaySettings
from screenrelay.models.session import Provider
from screenrelay.providers import RealtimeEvent, create_adapters

# A small but valid base64 JPEG-ish payload (well over the 100 character minimum)
VALID_IMAGE = base64.b64encode(b"\xff\xd8\xff\xe0" + bytes(range(256)) + b"\xff\xd9").decode()

_END = object()


@pytest.fixture(autouse=True)
def _clean_env():
    """Prevent environment variable pollution between tests."""
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("SCREENRELAY_") or key in (
            "GEMINI_API_KEY",
            "OPENROUTER_API_KEY",
            "GROK_API_KEY",
        ):
            del os.environ[key]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def echo_reply(payload: dict) -> str | None:
    """Default realtime backend: answers text and images, stays silent on audio."""
    if "text" in payload:
        return {"hello": "hi"}.get(payload["text"], f"echo: {payload['text']}")
    if "media" in payload:
        return "I can see your screen"
    return None


class FakeConnection:
    """In-memory realtime connection driven by the test."""

    def __init__(self, reply=echo_reply):
        self.reply = reply
        self.sent: list[dict] = []
        self.closed = False
        self._events: asyncio.Queue = asyncio.Queue()

    async def send(self, payload: dict) -> None:
        if self.closed:
            raise ConnectionError("connection closed")
        self.sent.append(payload)
        if self.reply is not None:
            text = self.reply(payload)
            if text is not None:
                self.push(RealtimeEvent(text=text))
                self.push(RealtimeEvent(turn_complete=True))

    def push(self, event: RealtimeEvent) -> None:
        self._events.put_nowait(event)

    def drop(self) -> None:
        """Simulate the backend hanging up."""
        self._events.put_nowait(_END)

    async def events(self):
        while True:
            event = await self._events.get()
            if event is _END:
                return
            yield event

    async def close(self) -> None:
        self.closed = True
        self._events.put_nowait(_END)


class FakeTransport:
    """Realtime transport that hands out FakeConnections."""

    def __init__(self, reply=echo_reply):
        self.reply = reply
        self.calls: list[dict] = []
        self.connections: list[FakeConnection] = []
        self.failures: list[Exception] = []

    async def connect(self, *, api_key, model, system_prompt, language):
        self.calls.append(
            {"api_key": api_key, "model": model, "system_prompt": system_prompt, "language": language}
        )
        if self.failures:
            raise self.failures.pop(0)
        conn = FakeConnection(self.reply)
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class FakeGrokBackend:
    """httpx.MockTransport handler emulating the session-based HTTP provider."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, httpx.Response] = {}

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content or b"{}") for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, response in self.overrides.items():
            if path.endswith(suffix):
                return response
        body = json.loads(request.content or b"{}")
        if path.endswith("/sessions"):
            return httpx.Response(200, json={"sessionId": "grok-1"})
        if path.endswith("/text"):
            return httpx.Response(200, json={"reply": f"grok: {body['text']}"})
        if path.endswith("/image"):
            return httpx.Response(200, json={"text": "grok sees an image"})
        if path.endswith("/audio"):
            return httpx.Response(200, json={"reply": "grok heard you"})
        return httpx.Response(404, json={"error": {"message": "not found"}})


class ProviderSwitch:
    """Mutable provider selector standing in for the settings store."""

    def __init__(self, provider: Provider = Provider.STREAMING_REALTIME):
        self.provider = provider

    def __call__(self) -> Provider:
        return self.provider


class SleepRecorder:
    """Replacement for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def make_completion(content: str | None) -> MagicMock:
    """A LiteLLM-shaped completion response."""
    response = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]
    return response


@pytest.fixture
def settings():
    return RelaySettings(
        init_timeout=2.0,
        text_timeout=2.0,
        image_timeout=2.0,
        reconnect_base_delay=2.0,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def grok_backend():
    return FakeGrokBackend()


@pytest.fixture
def switch():
    return ProviderSwitch()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def router(settings, sink, transport, grok_backend, switch, sleeper):
    adapters = create_adapters(settings, transport, httpx.MockTransport(grok_backend))
    return SessionRouter(
        SessionRegistry(adapters),
        switch,
        sink=sink,
        settings=settings,
        sleep=sleeper,
    )


async def settle(rounds: int = 5) -> None:
    """Let background reader and reconnection tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
