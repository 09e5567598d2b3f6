"""Session listing. The Gateway is the source of truth for session state."""

from __future__ import annotations

from fastapi import APIRouter

from adapter.models.responses import ApiResponse
from adapter.services.cli import cli_runner

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def list_sessions() -> ApiResponse:
    parsed = await cli_runner.run_json(["sessions", "list", "--json"])
    return ApiResponse.from_json(
        parsed,
        warnings=[
            "The Gateway is the source of truth for session state.",
            "Sessions cannot be inferred from local files.",
        ],
    )
