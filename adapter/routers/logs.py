"""Log endpoints: recent lines and a live SSE tail of ``openclaw logs --follow``."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from adapter.models.commands import StreamKind
from adapter.models.responses import ApiResponse
from adapter.services.cli import cli_runner
from adapter.services.executor import ExecutionFailure
from adapter.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/logs", tags=["logs"])


def parse_log_lines(text: str) -> list[dict]:
    """JSON-lines log output; non-JSON lines become info entries."""
    entries: list[dict] = []
    now = datetime.now(timezone.utc).isoformat()
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            entry = None
        if not isinstance(entry, dict):
            entry = {"message": line, "level": "info", "timestamp": now}
        entries.append(entry)
    return entries


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def recent_logs(lines: int = Query(default=100, ge=1, le=10_000)) -> ApiResponse:
    result = await cli_runner.run(["logs", "--lines", str(lines)])
    if not result.ok and not result.stdout:
        return ApiResponse(ok=False, error=result.stderr or "Command failed")
    return ApiResponse(ok=True, data=parse_log_lines(result.stdout))


async def log_events(tokens: list[str]) -> AsyncIterator[dict]:
    """SSE events for a log tail: one ``data`` event per line, then ``close``.

    Cancellation (client disconnect) propagates into the stream, which kills
    the underlying process.
    """
    stream = cli_runner.stream(tokens)
    try:
        async for chunk in stream:
            if chunk.stream is StreamKind.exit:
                log.info("logs.stream_exit", rc=chunk.exit_code)
                break
            if chunk.stream is StreamKind.stdout:
                if chunk.text:
                    yield {"data": chunk.text}
            else:
                yield {"data": json.dumps({"level": "error", "message": chunk.text})}
    except ExecutionFailure as exc:
        log.warning("logs.stream_failed", error=str(exc))
        yield {"data": json.dumps({"level": "error", "message": str(exc)})}
    finally:
        await stream.aclose()
    yield {"event": "close", "data": "done"}


@router.get("/stream")
async def stream_logs() -> EventSourceResponse:
    return EventSourceResponse(log_events(["logs", "--follow"]))
