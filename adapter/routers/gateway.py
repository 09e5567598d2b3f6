"""Gateway lifecycle and diagnostics endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from adapter.models.responses import ApiResponse, GatewayCallRequest
from adapter.services.cli import as_json, cli_runner

router = APIRouter(prefix="/api/gateway", tags=["gateway"])

DEFAULT_GATEWAY_PORT = 18789
DEFAULT_BIND_HOST = "127.0.0.1"


@router.get("/status", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_status() -> ApiResponse:
    """Gateway status; always ``ok`` so the UI can render a stopped gateway."""
    result = await cli_runner.run(["gateway", "status", "--json"])
    if not result.ok:
        return ApiResponse(
            ok=True,
            data={
                "running": False,
                "rpcProbe": "fail",
                "port": DEFAULT_GATEWAY_PORT,
                "bindHost": DEFAULT_BIND_HOST,
                "error": result.stderr or "Gateway not running",
            },
        )

    parsed = as_json(result)
    if isinstance(parsed.data, dict):
        return ApiResponse(ok=True, data=parsed.data)

    # Plain-text output: infer state from the wording
    running = "running" in result.stdout.lower()
    return ApiResponse(
        ok=True,
        data={
            "running": running,
            "rpcProbe": "ok" if running else "unknown",
            "port": DEFAULT_GATEWAY_PORT,
            "bindHost": DEFAULT_BIND_HOST,
            "raw": result.stdout,
        },
    )


@router.get("/health", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_health() -> ApiResponse:
    """Full ``openclaw status`` output."""
    result = await cli_runner.run(["status"])
    return ApiResponse(ok=True, data={"raw": result.stdout, "exitCode": result.exit_code})


@router.get("/doctor", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_doctor() -> ApiResponse:
    result = await cli_runner.run(["doctor"])
    return ApiResponse(
        ok=True,
        data={"passed": result.ok, "raw": result.stdout + result.stderr},
    )


@router.post("/restart", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_restart() -> ApiResponse:
    result = await cli_runner.run(["gateway", "restart"])
    return ApiResponse.from_result(result)


@router.get("/channels-status", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_channels_status() -> ApiResponse:
    result = await cli_runner.run(["channels", "status", "--probe"])
    return ApiResponse(ok=True, data={"raw": result.stdout, "exitCode": result.exit_code})


@router.post("/call", response_model=ApiResponse, response_model_exclude_none=True)
async def gateway_call(req: GatewayCallRequest) -> ApiResponse:
    """Invoke a gateway RPC method through ``openclaw gateway call``."""
    result = await cli_runner.gateway_call(req.method, req.params)
    if result.error is not None:
        return ApiResponse(ok=False, error=result.error)
    return ApiResponse(ok=True, data=result.data)
