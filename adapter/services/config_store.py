"""OpenClaw config and state directory access.

Reads and writes ``~/.openclaw/openclaw.json`` (JSON5).  When the CLI runs
inside WSL the files live in the distro's filesystem, reachable from Windows
through a ``\\\\wsl$\\<distro>\\...`` UNC path which is discovered once per
store by asking WSL for ``$HOME``.

OpenClaw validates its config strictly and refuses to boot on unknown keys,
so writes are syntax-checked and the previous file is kept as ``.bak``.
"""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path, PureWindowsPath
from typing import Any

import json5

from adapter.config import Settings, settings
from adapter.models.commands import ExecutionTarget, SpawnSpec
from adapter.services import executor
from adapter.services.command_builder import WSL_BINARY, wsl_prefix
from adapter.services.executor import ExecutionFailure
from adapter.services.platform import resolve_target
from adapter.utils.logging import get_logger

log = get_logger(__name__)

CONFIG_FILENAME = "openclaw.json"
STATE_DIRNAME = ".openclaw"
FALLBACK_WSL_HOME = r"\\wsl$\Ubuntu\home\user"
_WSL_PROBE_TIMEOUT_MS = 10_000


class ConfigValidationError(ValueError):
    """Raised when config text is not valid JSON5."""


class ConfigConflictError(Exception):
    """Raised when the config changed since the caller read it."""


def parse_json5(raw: str) -> Any:
    try:
        return json5.loads(raw)
    except ValueError as exc:
        raise ConfigValidationError(f"Invalid JSON5: {exc}") from exc


def dump_json5(data: Any) -> str:
    return json5.dumps(data, indent=2)


def hash_config(raw: str) -> str:
    """Short content hash used for optimistic concurrency.

    31-multiplier rolling hash over UTF-16 code units, wrapped to a signed
    32-bit integer, rendered as the base-36 absolute value.
    """
    h = 0
    data = raw.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 1 << 32
    return _base36(abs(h))


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def deep_merge(target: dict, patch: dict) -> dict:
    """Merge *patch* into *target* in place; ``None`` values delete keys."""
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def wsl_unc_path(distro: str, linux_path: str) -> str:
    """``/home/user`` in *distro* -> ``\\\\wsl$\\<distro>\\home\\user``."""
    return "\\\\wsl$\\" + distro + linux_path.replace("/", "\\")


def pick_distro(listing: str, wanted: str | None) -> str:
    """Choose the distro name from ``wsl -l -q`` output (first is default)."""
    names = [
        n.strip() for n in listing.replace("\0", "").splitlines() if n.strip()
    ]
    if wanted:
        for name in names:
            if name.lower() == wanted.lower():
                return name
        return wanted
    return names[0] if names else "Ubuntu"


class ConfigStore:
    """Locates and reads/writes OpenClaw's config and state directory."""

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        target: ExecutionTarget | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self._target = target
        self._wsl_home: str | None = None
        self._lock = asyncio.Lock()

    @property
    def target(self) -> ExecutionTarget:
        if self._target is None:
            self._target = resolve_target(self._cfg)
        return self._target

    # ── path resolution ───────────────────────────────────────────────

    async def _home(self) -> str:
        if self.target.uses_wsl:
            return await self.wsl_home()
        return str(Path.home())

    async def wsl_home(self) -> str:
        """Windows-visible path to the WSL user's home, cached after first use."""
        if self._wsl_home is not None:
            return self._wsl_home
        prefix = tuple(wsl_prefix(self.target))
        try:
            home = await executor.execute(
                SpawnSpec(program=WSL_BINARY, argv=(*prefix, "--", "bash", "-lc", "echo $HOME")),
                _WSL_PROBE_TIMEOUT_MS,
            )
        except ExecutionFailure as exc:
            log.warning("config.wsl_home_failed", error=str(exc), fallback=FALLBACK_WSL_HOME)
            self._wsl_home = FALLBACK_WSL_HOME
            return self._wsl_home
        if not home.ok or not home.stdout.strip():
            log.warning("config.wsl_home_failed", rc=home.exit_code, fallback=FALLBACK_WSL_HOME)
            self._wsl_home = FALLBACK_WSL_HOME
            return self._wsl_home

        listing = ""
        try:
            names = await executor.execute(
                SpawnSpec(program=WSL_BINARY, argv=("-l", "-q")),
                _WSL_PROBE_TIMEOUT_MS,
            )
            if names.ok:
                listing = names.stdout
        except ExecutionFailure as exc:
            log.warning("config.wsl_list_failed", error=str(exc))

        distro = pick_distro(listing, self.target.distro)
        self._wsl_home = wsl_unc_path(distro, home.stdout.strip())
        log.info("config.wsl_home", path=self._wsl_home)
        return self._wsl_home

    def _join(self, base: str, *parts: str) -> str:
        if self.target.uses_wsl:
            return str(PureWindowsPath(base, *parts))
        return str(Path(base, *parts))

    async def state_dir(self) -> str:
        if self._cfg.openclaw_state_dir:
            return self._cfg.openclaw_state_dir
        return self._join(await self._home(), STATE_DIRNAME)

    async def config_path(self) -> str:
        if self._cfg.openclaw_config_path:
            return self._cfg.openclaw_config_path
        return self._join(await self._home(), STATE_DIRNAME, CONFIG_FILENAME)

    async def cron_dir(self) -> str:
        return self._join(await self.state_dir(), "cron")

    async def skills_dir(self) -> str:
        return self._join(await self.state_dir(), "skills")

    # ── read / write ──────────────────────────────────────────────────

    async def read_config(self) -> tuple[str, dict[str, Any]]:
        """Return ``(raw, parsed)``; a missing file reads as ``{}``."""
        return _load(Path(await self.config_path()))

    async def write_config(self, raw: str, base_hash: str | None = None) -> str:
        """Validate, back up the current file, write *raw*; returns the new hash.

        With *base_hash*, the write only happens if the file on disk still
        hashes to it; the check and the write share the store lock.
        """
        parse_json5(raw)
        path = Path(await self.config_path())
        async with self._lock:
            if base_hash is not None:
                current = path.read_text(encoding="utf-8") if path.exists() else "{}"
                if hash_config(current) != base_hash:
                    raise ConfigConflictError("Config was modified since you loaded it")
            return _save(path, raw)

    async def update_config(self, mutate) -> dict[str, Any]:
        """Read, apply ``mutate(parsed)`` and write back as JSON5, atomically."""
        path = Path(await self.config_path())
        async with self._lock:
            _, parsed = _load(path)
            mutate(parsed)
            _save(path, dump_json5(parsed))
        return parsed

    async def read_cron_jobs(self) -> list:
        path = Path(await self.cron_dir()) / "jobs.json"
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("config.cron_jobs_unreadable", path=str(path), error=str(exc))
            return []
        if isinstance(data, dict):
            return data.get("jobs", [])
        return data


def _load(path: Path) -> tuple[str, dict[str, Any]]:
    if not path.exists():
        return "{}", {}
    raw = path.read_text(encoding="utf-8")
    parsed = parse_json5(raw)
    if not isinstance(parsed, dict):
        raise ConfigValidationError("Config root must be an object")
    return raw, parsed


def _save(path: Path, raw: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        shutil.copyfile(path, path.with_name(path.name + ".bak"))
    path.write_text(raw, encoding="utf-8")
    new_hash = hash_config(raw)
    log.info("config.written", path=str(path), hash=new_hash)
    return new_hash


# Singleton
config_store = ConfigStore()
