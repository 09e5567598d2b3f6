"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from adapter import __version__
from adapter.config import settings
from adapter.routers import (
    channels,
    config,
    cron,
    gateway,
    health,
    logs,
    sessions,
    skills,
    system,
)
from adapter.services.cli import cli_runner
from adapter.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging()
    target = cli_runner.target
    log.info(
        "adapter.started",
        version=__version__,
        gateway_url=settings.gateway_url,
        wsl=target.uses_wsl,
        distro=target.distro,
    )
    yield
    log.info("adapter.stopped")


app = FastAPI(
    title="OpenClaw Control Plane Adapter",
    description="HTTP adapter over the OpenClaw CLI",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "request.failed",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})


app.include_router(health.router)
app.include_router(gateway.router)
app.include_router(cron.router)
app.include_router(skills.router)
app.include_router(channels.router)
app.include_router(config.router)
app.include_router(logs.router)
app.include_router(sessions.router)
app.include_router(system.router)


def run() -> None:
    """Console entry-point: serve the app with uvicorn."""
    uvicorn.run(
        "adapter.main:app",
        host=settings.adapter_host,
        port=settings.adapter_port,
    )


if __name__ == "__main__":
    run()
