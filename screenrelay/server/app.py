"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from screenrelay.bridge import RelayBridge
from screenrelay.server.routes import register_routes


def create_app(
    bridge: RelayBridge | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    from screenrelay.server.dependencies import set_bridge

    if bridge is not None:
        set_bridge(bridge)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Close every provider session on shutdown
        from screenrelay.server.dependencies import reset_bridge

        await reset_bridge()

    app = FastAPI(
        title="screenrelay",
        description="Multi-provider session relay for a desktop assistant",
        lifespan=lifespan,
    )

    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app
