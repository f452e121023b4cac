"""GET /events - push notifications as server-sent events."""

from __future__ import annotations

import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from screenrelay.bridge import RelayBridge
from screenrelay.server.dependencies import get_bridge

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


def encode_event(channel: str, payload) -> bytes:
    """Format one notification as an SSE frame."""
    return f"event: {channel}\ndata: {json.dumps(payload, default=str)}\n\n".encode()


async def notification_stream(
    bridge: RelayBridge,
    request: Request,
    limit: int | None = None,
) -> AsyncGenerator[bytes, None]:
    """Yield notifications until the client disconnects (or ``limit`` is reached)."""
    queue = bridge.broadcast.subscribe()
    sent = 0
    try:
        yield b": connected\n\n"
        while limit is None or sent < limit:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except TimeoutError:
                if await request.is_disconnected():
                    break
                yield b": keep-alive\n\n"
                continue
            yield encode_event(event.channel, event.payload)
            sent += 1
    finally:
        bridge.broadcast.unsubscribe(queue)


@router.get("/events")
async def events(
    request: Request,
    limit: int | None = None,
    bridge: RelayBridge = Depends(get_bridge),
):
    """Stream ``session-initializing``, ``update-status``, ``update-response`` and
    ``save-conversation-turn`` notifications."""
    if bridge.broadcast is None:
        raise HTTPException(status_code=503, detail="Notifications are not enabled")
    return StreamingResponse(
        notification_stream(bridge, request, limit),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
