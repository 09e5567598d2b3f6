"""Turn CLI argument tokens into runnable commands.

Two forms are produced for the same logical command:

* a single shell string, run through the system shell for buffered calls;
* a :class:`SpawnSpec` (program + argv), spawned directly for streaming.

With WSL the logical command is handed to ``bash -lc`` inside the distro so
the user's login profile (and PATH) is loaded.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence

from adapter.models.commands import ExecutionTarget, SpawnSpec

DEFAULT_BINARY = "openclaw"
WSL_BINARY = "wsl"


def logical_command(tokens: Sequence[str], binary: str = DEFAULT_BINARY) -> str:
    """``<binary> <tokens...>`` with each token quoted only if it needs it."""
    return " ".join([binary, *(shlex.quote(t) for t in tokens)])


def escape_single_quotes(text: str) -> str:
    """Make *text* safe to place between single quotes: ``'`` -> ``'\\''``."""
    return text.replace("'", "'\\''")


def wsl_prefix(target: ExecutionTarget) -> list[str]:
    if target.distro:
        return ["-d", target.distro]
    return []


def build_shell_string(
    tokens: Sequence[str],
    target: ExecutionTarget,
    binary: str = DEFAULT_BINARY,
) -> str:
    command = logical_command(tokens, binary)
    if not target.uses_wsl:
        return command
    prefix = " ".join(shlex.quote(p) for p in wsl_prefix(target))
    distro_flag = f"{prefix} " if prefix else ""
    return f"{WSL_BINARY} {distro_flag}-- bash -lc '{escape_single_quotes(command)}'"


def build_spawn_spec(
    tokens: Sequence[str],
    target: ExecutionTarget,
    binary: str = DEFAULT_BINARY,
) -> SpawnSpec:
    if not target.uses_wsl:
        return SpawnSpec(program=binary, argv=tuple(tokens))
    return SpawnSpec(
        program=WSL_BINARY,
        argv=(*wsl_prefix(target), "--", "bash", "-lc", logical_command(tokens, binary)),
    )
