"""OpenClaw CLI runner: command building, retries and error classification.

Safety: commands are built from token lists assembled by the routers from
allowlisted flags and validated request fields, never from raw user text.
Tokens are shell-quoted by the builder, so callers pass plain values.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncGenerator, Sequence
from typing import Any, Optional

from adapter.config import Settings, settings
from adapter.models.commands import (
    CliJsonResult,
    ExecutionResult,
    ExecutionTarget,
    OutputChunk,
    RetryPolicy,
)
from adapter.services import executor
from adapter.services.command_builder import build_shell_string, build_spawn_spec
from adapter.services.executor import CommandTimeout, ExecutionFailure
from adapter.services.platform import resolve_target
from adapter.utils.logging import get_logger

log = get_logger(__name__)

# Keyed by the first two tokens, then by the first token alone.
COMMAND_TIMEOUTS: dict[str, int] = {
    "gateway restart": 60_000,
    "cron add": 10_000,
    "cron remove": 10_000,
    "skills install": 120_000,
    "clawhub install": 120_000,
    "clawhub update": 120_000,
    "doctor": 60_000,
}

CONNECTION_REFUSED_MESSAGE = "Connection refused. Is the OpenClaw Gateway running?"
_CONNECTION_REFUSED_MARKERS = ("econnrefused", "connection refused")


def command_key(tokens: Sequence[str]) -> str:
    return " ".join(tokens[:2])


def lookup_timeout(
    tokens: Sequence[str],
    default_ms: int,
    table: dict[str, int] | None = None,
) -> int:
    """Per-command timeout; logs when a command falls through to the default."""
    _table = COMMAND_TIMEOUTS if table is None else table
    for key in (command_key(tokens), " ".join(tokens[:1])):
        if key in _table:
            return _table[key]
    log.debug("cli.timeout_default", command=command_key(tokens), timeout_ms=default_ms)
    return default_ms


def format_failure(
    failure: ExecutionFailure | None,
    result: ExecutionResult | None,
) -> str:
    """Human-readable message for the last failed attempt."""
    if isinstance(failure, CommandTimeout):
        return str(failure)
    text = ""
    if failure is not None:
        text = str(failure)
    elif result is not None:
        text = result.stderr.strip() or result.stdout.strip()
        if not text:
            text = f"Command exited with code {result.exit_code}"
    if any(marker in text.lower() for marker in _CONNECTION_REFUSED_MARKERS):
        return CONNECTION_REFUSED_MESSAGE
    return text or "Unknown error"


def as_json(result: ExecutionResult) -> CliJsonResult:
    """Decode stdout as JSON, falling back to the raw text."""
    if result.exit_code != 0:
        return CliJsonResult(error=result.stderr or result.stdout or "Command failed")
    try:
        return CliJsonResult(data=json.loads(result.stdout))
    except ValueError:
        return CliJsonResult(data=result.stdout)


class CLIRunner:
    """Runs ``openclaw`` commands against the resolved execution target."""

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        target: ExecutionTarget | None = None,
        timeouts: dict[str, int] | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self._target = target
        self._timeouts = COMMAND_TIMEOUTS if timeouts is None else timeouts

    # ── target / policy ───────────────────────────────────────────────

    @property
    def target(self) -> ExecutionTarget:
        if self._target is None:
            self._target = resolve_target(self._cfg)
            log.info(
                "cli.target_resolved",
                wsl=self._target.uses_wsl,
                distro=self._target.distro,
            )
        return self._target

    def reset_target(self) -> None:
        self._target = None

    @property
    def binary(self) -> str:
        return self._cfg.openclaw_bin

    def policy_for(
        self,
        tokens: Sequence[str],
        *,
        timeout_ms: int | None = None,
        retries: int | None = None,
    ) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=retries if retries is not None else self._cfg.openclaw_cli_max_attempts,
            base_delay_ms=self._cfg.openclaw_cli_retry_base_delay_ms,
            max_delay_ms=self._cfg.openclaw_cli_retry_max_delay_ms,
            timeout_ms=timeout_ms or lookup_timeout(
                tokens, self._cfg.openclaw_cli_timeout_ms, self._timeouts,
            ),
        )

    def shell_command(self, tokens: Sequence[str]) -> str:
        return build_shell_string(tokens, self.target, self.binary)

    # ── one-shot ──────────────────────────────────────────────────────

    async def run(
        self,
        tokens: Sequence[str],
        *,
        timeout_ms: int | None = None,
        retries: int | None = None,
    ) -> ExecutionResult:
        policy = self.policy_for(tokens, timeout_ms=timeout_ms, retries=retries)
        return await self.run_with_retry(tokens, policy)

    async def run_with_retry(
        self,
        tokens: Sequence[str],
        policy: RetryPolicy,
    ) -> ExecutionResult:
        """Run *tokens* under *policy*; never raises for expected failures."""
        command = self.shell_command(tokens)
        key = command_key(tokens)
        started = time.monotonic()
        last_failure: Optional[ExecutionFailure] = None
        last_result: Optional[ExecutionResult] = None
        attempts = 0

        for attempt in range(1, policy.max_attempts + 1):
            attempts = attempt
            last_failure = None
            try:
                result = await executor.execute(command, policy.timeout_ms)
            except ExecutionFailure as exc:
                last_failure = exc
                if exc.terminal:
                    log.warning("cli.start_failed", command=key, error=str(exc))
                    break
            else:
                if result.ok:
                    if result.stderr:
                        log.warning("cli.warning", command=key, stderr=result.stderr[:200])
                    return result.model_copy(update={
                        "duration_ms": _elapsed_ms(started),
                        "retries": attempt if attempt > 1 else None,
                    })
                last_result = result

            if attempt < policy.max_attempts:
                delay = policy.delay_before(attempt)
                log.info(
                    "cli.retry",
                    command=key,
                    attempt=attempt + 1,
                    max_attempts=policy.max_attempts,
                    delay_ms=delay,
                )
                await asyncio.sleep(delay / 1000)

        if last_failure is not None:
            exit_code = last_failure.exit_code
            stdout = ""
        else:
            exit_code = last_result.exit_code if last_result is not None else 1
            stdout = last_result.stdout if last_result is not None else ""
        message = format_failure(last_failure, last_result)
        log.warning("cli.failed", command=key, rc=exit_code, attempts=attempts, error=message[:200])
        return ExecutionResult(
            stdout=stdout,
            stderr=message,
            exit_code=exit_code,
            duration_ms=_elapsed_ms(started),
            retries=attempts,
        )

    async def run_json(
        self,
        tokens: Sequence[str],
        **kwargs: Any,
    ) -> CliJsonResult:
        return as_json(await self.run(tokens, **kwargs))

    async def gateway_call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> CliJsonResult:
        """``openclaw gateway call <method> --params '<json>'``."""
        return await self.run_json(
            ["gateway", "call", method, "--params", json.dumps(params or {})],
        )

    # ── streaming ─────────────────────────────────────────────────────

    def stream(self, tokens: Sequence[str]) -> AsyncGenerator[OutputChunk, None]:
        return executor.execute_streaming(
            build_spawn_spec(tokens, self.target, self.binary),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# ── Singleton instance ────────────────────────────────────────────────────

cli_runner = CLIRunner()
