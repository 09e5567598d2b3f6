"""Subprocess execution for built CLI commands.

One-shot calls buffer output to completion under a timeout.  Streaming calls
yield output lines as they arrive and always reap the child process, whether
the stream ends normally, the consumer stops iterating, or the task is
cancelled.

Failures that mean "the command never ran" (missing binary, permissions) and
timeouts are raised as :class:`ExecutionFailure` subclasses.  A non-zero exit
is *not* an exception; it is a normal :class:`ExecutionResult`.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import os
import signal
import time
from collections.abc import AsyncGenerator, AsyncIterator
from enum import Enum
from typing import Optional, Union

import psutil

from adapter.models.commands import (
    ExecutionResult,
    OutputChunk,
    SpawnSpec,
    StreamKind,
)
from adapter.utils.logging import get_logger

log = get_logger(__name__)

BuiltCommand = Union[str, SpawnSpec]

TIMEOUT_EXIT_CODE = 124
_SHELL_NOT_FOUND = 127
_SHELL_NOT_EXECUTABLE = 126
# cmd.exe: "is not recognized as an internal or external command"
_CMD_NOT_RECOGNIZED = 9009
_STREAM_LIMIT = 1 << 20
_REAP_TIMEOUT_S = 5.0


# ── failure variants ──────────────────────────────────────────────────────


class StartFailureKind(str, Enum):
    not_found = "not_found"
    permission_denied = "permission_denied"
    not_permitted = "not_permitted"
    other = "other"


class ExecutionFailure(Exception):
    """Base for failures where no usable process result exists."""

    exit_code = 1

    @property
    def terminal(self) -> bool:
        return False


class StartFailure(ExecutionFailure):
    """The process could not be launched."""

    def __init__(self, kind: StartFailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def terminal(self) -> bool:
        return self.kind is not StartFailureKind.other


class CommandTimeout(ExecutionFailure):
    """The process outlived its timeout and was killed."""

    exit_code = TIMEOUT_EXIT_CODE

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Command timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


# ── helpers ───────────────────────────────────────────────────────────────


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _describe(command: BuiltCommand) -> str:
    if isinstance(command, SpawnSpec):
        return " ".join([command.program, *command.argv])
    return command


async def _spawn(command: BuiltCommand) -> asyncio.subprocess.Process:
    kwargs: dict = dict(
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        limit=_STREAM_LIMIT,
    )
    if os.name == "posix":
        # Own process group so a timeout kills the shell and its children.
        kwargs["start_new_session"] = True
    try:
        if isinstance(command, SpawnSpec):
            return await asyncio.create_subprocess_exec(
                command.program, *command.argv, **kwargs,
            )
        return await asyncio.create_subprocess_shell(command, **kwargs)
    except FileNotFoundError as exc:
        raise StartFailure(StartFailureKind.not_found, str(exc)) from exc
    except PermissionError as exc:
        kind = (
            StartFailureKind.not_permitted
            if exc.errno == errno.EPERM
            else StartFailureKind.permission_denied
        )
        raise StartFailure(kind, str(exc)) from exc
    except OSError as exc:
        raise StartFailure(StartFailureKind.other, str(exc)) from exc


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the child and everything it started.

    Runs even when the child itself has exited: a background grandchild may
    still hold the output pipes open.
    """
    if os.name == "posix":
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(proc.pid, signal.SIGKILL)
        return
    _kill_tree(proc.pid)
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


def _kill_tree(pid: int) -> None:
    """Kill *pid*'s descendants, then *pid* (cmd.exe does not forward kills)."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return
    for process in [*children, parent]:
        with contextlib.suppress(psutil.NoSuchProcess):
            process.kill()


def shell_start_failure(
    code: int,
    stderr: str,
    platform_name: str = os.name,
) -> Optional[StartFailure]:
    """Start failure reported by the shell as an exit code, if any."""
    message = stderr.strip()
    if platform_name == "nt":
        if code == _CMD_NOT_RECOGNIZED:
            return StartFailure(StartFailureKind.not_found, message or "command not recognized")
        return None
    if code == _SHELL_NOT_FOUND:
        return StartFailure(StartFailureKind.not_found, message or "command not found")
    if code == _SHELL_NOT_EXECUTABLE:
        return StartFailure(StartFailureKind.permission_denied, message or "permission denied")
    return None


async def _read_lines(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield lines; a line longer than the stream limit comes out in pieces."""
    split = False
    while True:
        try:
            raw = await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            if exc.partial:
                yield exc.partial
            return
        except asyncio.LimitOverrunError as exc:
            split = True
            yield await reader.read(max(exc.consumed, 1))
            continue
        if split and raw.strip(b"\r\n") == b"":
            # Terminator of an oversized line already emitted in pieces.
            split = False
            continue
        split = False
        yield raw


async def _reap(proc: asyncio.subprocess.Process) -> None:
    _kill(proc)
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(proc.wait(), timeout=_REAP_TIMEOUT_S)


# ── one-shot ──────────────────────────────────────────────────────────────


async def execute(command: BuiltCommand, timeout_ms: int) -> ExecutionResult:
    """Run *command* to completion and buffer its output.

    Shell strings go through the system shell; a :class:`SpawnSpec` is
    executed directly.  Raises :class:`StartFailure` or
    :class:`CommandTimeout`; any exit status is otherwise returned.
    """
    started = time.monotonic()
    proc = await _spawn(command)
    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(), timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        await _reap(proc)
        log.warning("exec.timeout", command=_describe(command), timeout_ms=timeout_ms)
        raise CommandTimeout(timeout_ms) from None
    except asyncio.CancelledError:
        await _reap(proc)
        raise

    out, err = _decode(stdout), _decode(stderr)
    code = proc.returncode if proc.returncode is not None else 1
    duration_ms = int((time.monotonic() - started) * 1000)
    log.debug("exec.done", command=_describe(command), rc=code, duration_ms=duration_ms)

    if isinstance(command, str):
        # The shell reports launch failures of the inner command as exit codes.
        failure = shell_start_failure(code, err)
        if failure is not None:
            raise failure

    return ExecutionResult(
        stdout=out,
        stderr=err,
        exit_code=code,
        duration_ms=duration_ms,
    )


# ── streaming ─────────────────────────────────────────────────────────────


async def execute_streaming(command: SpawnSpec) -> AsyncGenerator[OutputChunk, None]:
    """Yield output lines tagged by stream, then a final ``exit`` chunk.

    Ordering is preserved within each stream, not across them.
    """
    proc = await _spawn(command)
    queue: asyncio.Queue[OutputChunk | None] = asyncio.Queue()

    async def pump(reader: asyncio.StreamReader, kind: StreamKind) -> None:
        try:
            async for raw in _read_lines(reader):
                queue.put_nowait(
                    OutputChunk(stream=kind, text=_decode(raw).rstrip("\r\n")),
                )
        except ValueError as exc:
            log.warning("stream.read_failed", stream=kind.value, error=str(exc))
        finally:
            queue.put_nowait(None)

    pumps = [
        asyncio.create_task(pump(proc.stdout, StreamKind.stdout)),
        asyncio.create_task(pump(proc.stderr, StreamKind.stderr)),
    ]
    finished = False
    try:
        open_streams = len(pumps)
        while open_streams:
            chunk = await queue.get()
            if chunk is None:
                open_streams -= 1
                continue
            yield chunk
        code = await proc.wait()
        finished = True
        yield OutputChunk(stream=StreamKind.exit, exit_code=code)
    finally:
        for task in pumps:
            task.cancel()
        if not finished:
            log.info("stream.killed", command=_describe(command), pid=proc.pid)
            await _reap(proc)
