"""FastAPI dependency injection for the relay bridge."""

from __future__ import annotations

from screenrelay.bridge import RelayBridge, build_bridge

# Module-level singleton
_bridge: RelayBridge | None = None


def get_bridge() -> RelayBridge:
    """Get or create the global bridge."""
    global _bridge
    if _bridge is None:
        _bridge = build_bridge()
    return _bridge


def set_bridge(bridge: RelayBridge | None) -> None:
    """Install a preconfigured bridge (used by ``serve`` and tests)."""
    global _bridge
    _bridge = bridge


async def reset_bridge() -> None:
    """Close and drop the global bridge."""
    global _bridge
    bridge, _bridge = _bridge, None
    if bridge is not None:
        await bridge.aclose()
