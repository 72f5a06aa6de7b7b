"""FastAPI app entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from mcphost.api.deps import get_connection_manager, get_health_monitor, get_settings
from mcphost.api.routes.health import router as health_router
from mcphost.api.routes.registry import router as registry_router
from mcphost.api.routes.servers import router as servers_router
from mcphost.api.routes.tools import router as tools_router
from mcphost.core.logger import configure_logging


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(get_settings().log_level)
    monitor = get_health_monitor()
    monitor.start()
    try:
        yield
    finally:
        await monitor.stop()
        await get_connection_manager().disconnect_all()


def create_app() -> FastAPI:
    app = FastAPI(title="mcphost API", version="0.1.0", lifespan=lifespan)
    app.include_router(servers_router)
    app.include_router(tools_router)
    app.include_router(health_router)
    app.include_router(registry_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    uvicorn.run("mcphost.api.app:app", host="127.0.0.1", port=8000, reload=False)
