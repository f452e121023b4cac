"""Route registration."""

from fastapi import FastAPI


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""
    from screenrelay.server.routes.events import router as events_router
    from screenrelay.server.routes.health import router as health_router
    from screenrelay.server.routes.ipc import router as ipc_router

    app.include_router(health_router)
    app.include_router(ipc_router)
    app.include_router(events_router)
