"""Host platform detection: native execution vs. WSL indirection."""

from __future__ import annotations

import sys

from adapter.config import Settings, settings
from adapter.models.commands import ExecutionTarget


def should_use_wsl(cfg: Settings | None = None, host_platform: str | None = None) -> bool:
    """Explicit OPENCLAW_USE_WSL wins; otherwise only Windows hosts use WSL."""
    _cfg = cfg or settings
    if _cfg.openclaw_use_wsl is not None:
        return _cfg.openclaw_use_wsl
    return (host_platform or sys.platform) == "win32"


def resolve_target(
    cfg: Settings | None = None,
    host_platform: str | None = None,
) -> ExecutionTarget:
    _cfg = cfg or settings
    if not should_use_wsl(_cfg, host_platform):
        return ExecutionTarget(uses_wsl=False)
    return ExecutionTarget(uses_wsl=True, distro=_cfg.openclaw_wsl_distro or None)
