"""POST /ipc/{channel} - invoke a relay channel."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from screenrelay.bridge import RelayBridge
from screenrelay.server.dependencies import get_bridge
from screenrelay.server.models import ChannelRequest, ChannelResponse

router = APIRouter()


@router.get("/ipc")
async def list_channels(bridge: RelayBridge = Depends(get_bridge)):
    return {"channels": bridge.channels}


@router.post("/ipc/{channel}", response_model=ChannelResponse, response_model_exclude_none=True)
async def invoke(
    channel: str,
    body: ChannelRequest | None = None,
    bridge: RelayBridge = Depends(get_bridge),
):
    """
    Call a channel with ``{args: [...], kwargs: {...}}``.

    Always answers 200 with ``{success, data?, error?}``; an unknown channel
    is a 404.
    """
    if channel not in bridge.channels:
        raise HTTPException(status_code=404, detail=f"Unknown channel: {channel}")
    body = body or ChannelRequest()
    return await bridge.handle(channel, *body.args, **body.kwargs)


@router.get("/conversation/export", response_class=PlainTextResponse)
async def export_conversation(fmt: str = "markdown", bridge: RelayBridge = Depends(get_bridge)):
    """The current conversation as markdown or JSON text."""
    if fmt not in ("markdown", "json"):
        raise HTTPException(status_code=400, detail="fmt must be 'markdown' or 'json'")
    return bridge.export_conversation(fmt)
