"""Cron endpoints wrapping ``openclaw cron``.

Jobs must not be edited in ``jobs.json`` while the gateway runs; every
mutation goes through the CLI.
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query

from adapter.models.cron import CronAddRequest, CronRunRequest
from adapter.models.responses import ApiResponse
from adapter.services.cli import cli_runner
from adapter.services.config_store import config_store

router = APIRouter(prefix="/api/cron", tags=["cron"])

_JOB_ID = r"^[\w.:-]+$"


@router.get("/list", response_model=ApiResponse, response_model_exclude_none=True)
async def list_jobs() -> ApiResponse:
    """List cron jobs; falls back to the on-disk job file when the CLI fails."""
    parsed = await cli_runner.run_json(["cron", "list", "--json"])
    if parsed.error is None:
        return ApiResponse.from_json(parsed)

    jobs = await config_store.read_cron_jobs()
    if jobs:
        return ApiResponse(
            ok=True,
            data={"jobs": jobs},
            warnings=[
                f"CLI unavailable ({parsed.error.strip()[:120]}); showing jobs.json from disk.",
                "On-disk job state may lag behind the running Gateway.",
            ],
        )
    return ApiResponse(ok=False, error=parsed.error)


@router.post("/add", response_model=ApiResponse, response_model_exclude_none=True)
async def add_job(req: CronAddRequest) -> ApiResponse:
    result = await cli_runner.run(req.to_tokens())
    return ApiResponse.from_result(result, fallback_to_stdout=True)


@router.post("/run", response_model=ApiResponse, response_model_exclude_none=True)
async def run_job(req: CronRunRequest) -> ApiResponse:
    """Run a job now (``mode=due`` only runs it if it is due)."""
    args = ["cron", "run", req.job_id]
    if req.mode == "due":
        args.append("--due")
    result = await cli_runner.run(args)
    return ApiResponse.from_result(result)


@router.get("/runs", response_model=ApiResponse, response_model_exclude_none=True)
async def list_runs(
    job_id: str | None = Query(default=None, alias="jobId", pattern=_JOB_ID),
    limit: int = Query(default=50, ge=1, le=1000),
) -> ApiResponse:
    args = ["cron", "runs"]
    if job_id:
        args += ["--id", job_id]
    args += ["--limit", str(limit)]
    return ApiResponse.from_json(await cli_runner.run_json(args))


@router.delete("/{job_id}", response_model=ApiResponse, response_model_exclude_none=True)
async def remove_job(job_id: str = Path(pattern=_JOB_ID)) -> ApiResponse:
    result = await cli_runner.run(["cron", "remove", job_id])
    return ApiResponse.from_result(result)
