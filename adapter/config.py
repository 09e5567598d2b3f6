"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables."""

    # WSL indirection (unset = auto-detect from host OS)
    openclaw_use_wsl: Optional[bool] = None
    openclaw_wsl_distro: str = ""

    # CLI binary and state locations
    openclaw_bin: str = "openclaw"
    openclaw_config_path: str = ""
    openclaw_state_dir: str = ""

    # Retry / timeout policy
    openclaw_cli_timeout_ms: int = 30_000
    openclaw_cli_max_attempts: int = 1
    openclaw_cli_retry_base_delay_ms: int = 1_000
    openclaw_cli_retry_max_delay_ms: int = 3_000

    # Gateway the CLI talks to (informational)
    gateway_url: str = "ws://127.0.0.1:18789"

    # HTTP listener
    adapter_host: str = "127.0.0.1"
    adapter_port: int = 3001

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton – import this from anywhere
settings = Settings()
