"""Common API response and request models."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from adapter.models.commands import CliJsonResult, ExecutionResult


class ApiResponse(BaseModel):
    """Envelope returned by every ``/api`` endpoint."""

    ok: bool
    data: Any = None
    error: Optional[str] = None
    warnings: Optional[list[str]] = None

    @classmethod
    def from_result(
        cls,
        result: ExecutionResult,
        data: Any = None,
        *,
        fallback_to_stdout: bool = False,
    ) -> ApiResponse:
        """Envelope for a CLI call that returns raw output."""
        error = None
        if not result.ok:
            error = result.stderr
            if fallback_to_stdout:
                error = error or result.stdout
        return cls(
            ok=result.ok,
            data={"raw": result.stdout} if data is None else data,
            error=error or None,
        )

    @classmethod
    def from_json(
        cls,
        parsed: CliJsonResult,
        warnings: list[str] | None = None,
    ) -> ApiResponse:
        """Envelope for a ``--json`` CLI call; non-JSON output becomes ``{"raw": ...}``."""
        if parsed.error is not None:
            return cls(ok=False, error=parsed.error, warnings=warnings)
        data = parsed.data
        if isinstance(data, str):
            data = {"raw": data}
        return cls(ok=True, data=data)


class HealthResponse(BaseModel):
    ok: bool = True
    service: str
    version: str
    time: str
    wsl: bool


# ── gateway ───────────────────────────────────────────────────────────────


class GatewayCallRequest(BaseModel):
    method: str = Field(pattern=r"^[A-Za-z][\w.-]*$", max_length=100)
    params: dict[str, Any] = Field(default_factory=dict)


# ── skills ────────────────────────────────────────────────────────────────


class SkillInstallRequest(BaseModel):
    slug: str = Field(pattern=r"^[\w@./-]+$", max_length=200)


class SkillCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    filename: Optional[str] = None


class SkillConfigUpdateRequest(BaseModel):
    skill_key: str = Field(alias="skillKey", min_length=1)
    entry: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


# ── config ────────────────────────────────────────────────────────────────


class ConfigPutRequest(BaseModel):
    raw: str = ""
    base_hash: Optional[str] = Field(default=None, alias="baseHash")

    model_config = {"populate_by_name": True}


class ConfigPatchRequest(BaseModel):
    patch: dict[str, Any]


class ConfigValidateRequest(BaseModel):
    raw: str
