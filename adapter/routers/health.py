"""Health-check endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from adapter import __version__
from adapter.models.responses import HealthResponse
from adapter.services.cli import cli_runner

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    """Basic liveness probe; does not touch the CLI."""
    return HealthResponse(
        service="openclaw-control-plane-adapter",
        version=__version__,
        time=datetime.now(timezone.utc).isoformat(),
        wsl=cli_runner.target.uses_wsl,
    )
