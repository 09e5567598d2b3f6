"""CLI execution data structures."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExecutionTarget(BaseModel):
    """Where CLI commands run: natively, or inside WSL."""

    model_config = {"frozen": True}

    uses_wsl: bool = False
    distro: Optional[str] = None


class SpawnSpec(BaseModel):
    """Program plus argv list for direct (non-shell) process creation."""

    model_config = {"frozen": True}

    program: str
    argv: tuple[str, ...] = ()


class ExecutionResult(BaseModel):
    """Result of one logical CLI invocation, after any retries."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration_ms: int = 0
    retries: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=1, ge=1)
    base_delay_ms: int = Field(default=1_000, ge=0)
    max_delay_ms: int = Field(default=3_000, ge=0)
    timeout_ms: int = Field(default=30_000, gt=0)

    def delay_before(self, attempt: int) -> int:
        """Backoff in ms before retry *attempt* (1-based count of prior tries)."""
        return min(self.base_delay_ms * attempt, self.max_delay_ms)


class StreamKind(str, Enum):
    stdout = "stdout"
    stderr = "stderr"
    exit = "exit"


class OutputChunk(BaseModel):
    """One line of streamed output, or the final exit marker."""

    stream: StreamKind
    text: str = ""
    exit_code: Optional[int] = None

    @property
    def is_exit(self) -> bool:
        return self.stream is StreamKind.exit


class CliJsonResult(BaseModel):
    data: Any = None
    error: Optional[str] = None
