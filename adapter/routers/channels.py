"""Channel endpoints: provider config in openclaw.json plus a CLI probe."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from adapter.models.responses import ApiResponse
from adapter.services.cli import cli_runner
from adapter.services.config_store import config_store

router = APIRouter(prefix="/api/channels", tags=["channels"])

SUPPORTED_PROVIDERS = [
    "whatsapp", "telegram", "discord", "slack",
    "signal", "imessage", "googlechat", "mattermost", "msteams",
]


@router.get("/list", response_model=ApiResponse, response_model_exclude_none=True)
async def list_channels() -> ApiResponse:
    _, config = await config_store.read_config()
    channels = config.get("channels") or {}
    data = []
    for provider in SUPPORTED_PROVIDERS:
        entry = channels.get(provider) or {}
        data.append({
            "provider": provider,
            "enabled": bool(entry) and entry.get("enabled") is not False,
            "configured": bool(entry),
            "dmPolicy": entry.get("dmPolicy") or "pairing",
            "allowFrom": entry.get("allowFrom") or [],
            "groups": entry.get("groups") or {},
        })
    return ApiResponse(ok=True, data=data)


@router.get("/status", response_model=ApiResponse, response_model_exclude_none=True)
async def channels_status() -> ApiResponse:
    result = await cli_runner.run(["channels", "status", "--probe"])
    return ApiResponse(ok=True, data={"raw": result.stdout, "exitCode": result.exit_code})


@router.put("/{provider}", response_model=ApiResponse, response_model_exclude_none=True)
async def update_channel(provider: str, body: dict[str, Any] = Body(...)):
    if provider not in SUPPORTED_PROVIDERS:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": f"Unknown provider: {provider}"},
        )

    def mutate(config: dict) -> None:
        channels = config.setdefault("channels", {})
        channels[provider] = {**(channels.get(provider) or {}), **body}

    config = await config_store.update_config(mutate)
    return ApiResponse(
        ok=True,
        data=config["channels"][provider],
        warnings=[
            "Channel config changes require a Gateway restart (not hot-reloaded).",
            "Run `openclaw gateway restart` or use the restart button.",
        ],
    )
