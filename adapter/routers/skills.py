"""Skills endpoints: ``openclaw skills`` / ``clawhub`` plus skills config."""

from __future__ import annotations

import re
from pathlib import Path as FsPath

from fastapi import APIRouter, Path

from adapter.models.responses import (
    ApiResponse,
    SkillConfigUpdateRequest,
    SkillCreateRequest,
    SkillInstallRequest,
)
from adapter.services.cli import cli_runner
from adapter.services.config_store import config_store

router = APIRouter(prefix="/api/skills", tags=["skills"])

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


@router.get("/list", response_model=ApiResponse, response_model_exclude_none=True)
async def list_skills() -> ApiResponse:
    return ApiResponse.from_json(await cli_runner.run_json(["skills", "list", "--json"]))


@router.get("/check", response_model=ApiResponse, response_model_exclude_none=True)
async def check_skills() -> ApiResponse:
    """Check skill requirements (binaries, env vars)."""
    result = await cli_runner.run(["skills", "check"])
    return ApiResponse(ok=result.ok, data={"raw": result.stdout + result.stderr})


@router.get("/info/{name}", response_model=ApiResponse, response_model_exclude_none=True)
async def skill_info(name: str = Path(pattern=r"^[\w@./-]+$")) -> ApiResponse:
    result = await cli_runner.run(["skills", "info", name])
    return ApiResponse.from_result(result)


@router.post("/install", response_model=ApiResponse, response_model_exclude_none=True)
async def install_skill(req: SkillInstallRequest) -> ApiResponse:
    """Install a skill from ClawHub."""
    result = await cli_runner.run(["clawhub", "install", req.slug])
    return ApiResponse.from_result(result, fallback_to_stdout=True)


@router.post("/update-all", response_model=ApiResponse, response_model_exclude_none=True)
async def update_all_skills() -> ApiResponse:
    result = await cli_runner.run(["clawhub", "update", "--all"])
    return ApiResponse.from_result(result)


@router.post("/sync", response_model=ApiResponse, response_model_exclude_none=True)
async def sync_skills() -> ApiResponse:
    result = await cli_runner.run(["clawhub", "sync", "--all"])
    return ApiResponse.from_result(result)


@router.post("/create", response_model=ApiResponse, response_model_exclude_none=True)
async def create_skill(req: SkillCreateRequest) -> ApiResponse:
    """Write a new skill source file into the managed skills directory."""
    stem = _UNSAFE_FILENAME_CHARS.sub("", req.filename or req.name).lower()
    if not stem:
        return ApiResponse(ok=False, error="name must contain letters, digits, '-' or '_'")

    skills_dir = FsPath(await config_store.skills_dir())
    skills_dir.mkdir(parents=True, exist_ok=True)
    file_path = skills_dir / f"{stem}.ts"
    file_path.write_text(req.content, encoding="utf-8")

    return ApiResponse(
        ok=True,
        data={"path": str(file_path), "name": req.name},
        warnings=[
            "Skill created. Restart the Gateway if it is not picked up by hot-reload.",
        ],
    )


@router.get("/config", response_model=ApiResponse, response_model_exclude_none=True)
async def get_skills_config() -> ApiResponse:
    _, parsed = await config_store.read_config()
    return ApiResponse(ok=True, data=parsed.get("skills") or {})


@router.put("/config", response_model=ApiResponse, response_model_exclude_none=True)
async def update_skill_config(req: SkillConfigUpdateRequest) -> ApiResponse:
    """Merge *entry* into ``skills.entries.<skillKey>``."""

    def mutate(config: dict) -> None:
        entries = config.setdefault("skills", {}).setdefault("entries", {})
        entries[req.skill_key] = {**entries.get(req.skill_key, {}), **req.entry}

    config = await config_store.update_config(mutate)
    return ApiResponse(
        ok=True,
        data=config["skills"]["entries"][req.skill_key],
        warnings=[
            "skills.entries.*.env and skills.entries.*.apiKey inject secrets into the host agent run, not the sandbox.",
            "Config hot-reload will apply this change. No restart needed.",
        ],
    )


@router.get("/locations", response_model=ApiResponse, response_model_exclude_none=True)
async def skill_locations() -> ApiResponse:
    """Skill search locations in precedence order."""
    _, config = await config_store.read_config()
    workspace = (
        config.get("agents", {}).get("defaults", {}).get("workspace")
        or "~/.openclaw/workspace"
    )
    extra_dirs = config.get("skills", {}).get("load", {}).get("extraDirs") or []

    precedence = [
        {"order": 1, "label": "Bundled", "description": "Shipped with OpenClaw install", "path": "(built-in)"},
        {"order": 2, "label": "Managed/Local", "description": "~/.openclaw/skills", "path": await config_store.skills_dir()},
        {"order": 3, "label": "Workspace", "description": "Wins on name conflicts", "path": f"{workspace}/skills"},
    ]
    for i, extra in enumerate(extra_dirs):
        precedence.append({
            "order": 4 + i,
            "label": f"Extra dir {i + 1}",
            "description": "From skills.load.extraDirs",
            "path": extra,
        })

    return ApiResponse(
        ok=True,
        data={
            "precedence": precedence,
            "note": "Workspace skills override managed and bundled skills on name conflict.",
        },
    )
