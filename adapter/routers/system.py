"""Adapter version, process metrics and health checks."""

from __future__ import annotations

import os
import platform
import sys
import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from adapter import __version__
from adapter.models.responses import ApiResponse
from adapter.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])

_STARTED = time.monotonic()

MEMORY_CRITICAL_PERCENT = 90.0
MEMORY_HIGH_PERCENT = 75.0
RECENT_START_S = 5.0


def format_uptime(seconds: float) -> str:
    days, rem = divmod(int(seconds), 86_400)
    hours, rem = divmod(rem, 3_600)
    minutes, secs = divmod(rem, 60)
    return f"{days}d {hours}h {minutes}m {secs}s"


def format_bytes(num: float) -> str:
    if num <= 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB"):
        if num < 1024 or unit == "GB":
            break
        num /= 1024
    return f"{round(num, 2):g} {unit}"


def check_memory(percent: float) -> dict:
    """System memory check; only critical usage marks the service degraded."""
    if percent > MEMORY_CRITICAL_PERCENT:
        return {"healthy": False, "message": f"Memory usage critical: {percent:.1f}%"}
    if percent > MEMORY_HIGH_PERCENT:
        return {"healthy": True, "message": f"Memory usage high: {percent:.1f}%"}
    return {"healthy": True, "message": f"Memory usage normal: {percent:.1f}%"}


def check_process(uptime: float) -> dict:
    if uptime < RECENT_START_S:
        return {"healthy": True, "message": "Process recently started"}
    return {"healthy": True, "message": f"Process uptime: {format_uptime(uptime)}"}


@router.get("/version", response_model=ApiResponse, response_model_exclude_none=True)
async def version() -> ApiResponse:
    return ApiResponse(
        ok=True,
        data={
            "name": "openclaw-control-plane-adapter",
            "version": __version__,
            "pythonVersion": platform.python_version(),
            "environment": os.environ.get("ENVIRONMENT", "development"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/metrics", response_model=ApiResponse, response_model_exclude_none=True)
async def metrics() -> ApiResponse:
    uptime = time.monotonic() - _STARTED
    proc_mem = psutil.Process().memory_info()
    sys_mem = psutil.virtual_memory()
    return ApiResponse(
        ok=True,
        data={
            "uptime": {"seconds": round(uptime, 3), "formatted": format_uptime(uptime)},
            "memory": {
                "rss": format_bytes(proc_mem.rss),
                "vms": format_bytes(proc_mem.vms),
            },
            "system": {
                "platform": sys.platform,
                "arch": platform.machine(),
                "cpus": os.cpu_count(),
                "totalMemory": format_bytes(sys_mem.total),
                "freeMemory": format_bytes(sys_mem.available),
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/health", response_model=ApiResponse, response_model_exclude_none=True)
async def system_health():
    """Memory and process checks; 503 when any check is unhealthy."""
    checks = {
        "memory": check_memory(psutil.virtual_memory().percent),
        "process": check_process(time.monotonic() - _STARTED),
    }
    healthy = all(check["healthy"] for check in checks.values())
    body = ApiResponse(
        ok=healthy,
        data={
            "status": "healthy" if healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    if healthy:
        return body
    log.warning("system.degraded", checks=checks)
    return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))
