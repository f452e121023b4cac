"""Health check endpoint."""

from fastapi import APIRouter, Depends

from screenrelay.bridge import RelayBridge
from screenrelay.server.dependencies import get_bridge

router = APIRouter()


@router.get("/health")
async def health(bridge: RelayBridge = Depends(get_bridge)):
    """Health check with per-provider slot status."""
    return {"status": "ok", "service": "screenrelay", **bridge.status()}
