"""Config endpoints for ``~/.openclaw/openclaw.json``.

OpenClaw validates strictly: unknown keys make the Gateway refuse to boot.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from adapter.models.responses import (
    ApiResponse,
    ConfigPatchRequest,
    ConfigPutRequest,
    ConfigValidateRequest,
)
from adapter.services.config_store import (
    ConfigConflictError,
    ConfigValidationError,
    config_store,
    deep_merge,
    dump_json5,
    hash_config,
    parse_json5,
)

router = APIRouter(prefix="/api/config", tags=["config"])


def _error(status_code: int, error: str, warnings: list[str] | None = None) -> JSONResponse:
    content: dict = {"ok": False, "error": error}
    if warnings:
        content["warnings"] = warnings
    return JSONResponse(status_code=status_code, content=content)


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def get_config() -> ApiResponse:
    raw, parsed = await config_store.read_config()
    return ApiResponse(ok=True, data={"raw": raw, "parsed": parsed, "hash": hash_config(raw)})


@router.put("", response_model=ApiResponse, response_model_exclude_none=True)
async def put_config(req: ConfigPutRequest):
    """Replace the whole config; ``baseHash`` guards against lost updates."""
    if not req.raw:
        return _error(400, "raw config content is required")

    try:
        parse_json5(req.raw)
    except ConfigValidationError as exc:
        return _error(
            400,
            str(exc),
            warnings=[
                "OpenClaw rejects unknown keys and will refuse to boot on invalid config.",
                "Check your config against the docs: https://docs.openclaw.ai/configuration",
            ],
        )

    try:
        new_hash = await config_store.write_config(req.raw, base_hash=req.base_hash or None)
    except ConfigConflictError:
        return _error(409, "Config was modified since you loaded it. Refresh and try again.")
    return ApiResponse(
        ok=True,
        data={"hash": new_hash},
        warnings=[
            "OpenClaw strict validation: unknown keys cause boot failure.",
            "A backup was saved as openclaw.json.bak.",
            "Config hot-reload is active for most keys (hybrid mode).",
            "Channel and gateway.* changes require a restart.",
        ],
    )


@router.post("/patch", response_model=ApiResponse, response_model_exclude_none=True)
async def patch_config(req: ConfigPatchRequest) -> ApiResponse:
    """Deep-merge a partial config; ``null`` values remove keys."""
    parsed = await config_store.update_config(lambda config: deep_merge(config, req.patch))
    new_hash = hash_config(dump_json5(parsed))
    return ApiResponse(ok=True, data={"hash": new_hash, "applied": req.patch})


@router.post("/validate", response_model=ApiResponse, response_model_exclude_none=True)
async def validate_config(req: ConfigValidateRequest) -> ApiResponse:
    """Check JSON5 syntax without saving."""
    try:
        parse_json5(req.raw)
    except ConfigValidationError as exc:
        return ApiResponse(ok=True, data={"valid": False, "error": str(exc)})
    return ApiResponse(
        ok=True,
        data={"valid": True},
        warnings=[
            "JSON5 syntax is valid. OpenClaw may still reject unknown keys at boot time.",
        ],
    )
