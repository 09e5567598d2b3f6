"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("OPENCLAW_USE_WSL", "false")
os.environ.setdefault("OPENCLAW_CLI_MAX_ATTEMPTS", "1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient

from tests.mock_cli import MockCLIRunner

_ROUTER_MODULES = (
    "adapter.routers.gateway",
    "adapter.routers.cron",
    "adapter.routers.skills",
    "adapter.routers.channels",
    "adapter.routers.logs",
    "adapter.routers.sessions",
    "adapter.routers.health",
)

_STORE_MODULES = (
    "adapter.routers.cron",
    "adapter.routers.skills",
    "adapter.routers.channels",
    "adapter.routers.config",
)


@pytest.fixture
def mock_cli():
    """Provide a fresh MockCLIRunner."""
    return MockCLIRunner()


@pytest.fixture
def state_dir(tmp_path):
    """Temporary OpenClaw state directory."""
    path = tmp_path / ".openclaw"
    path.mkdir()
    return path


@pytest.fixture
def config_store(state_dir):
    from adapter.config import Settings
    from adapter.models.commands import ExecutionTarget
    from adapter.services.config_store import ConfigStore

    test_settings = Settings(
        openclaw_use_wsl=False,
        openclaw_state_dir=str(state_dir),
        openclaw_config_path=str(state_dir / "openclaw.json"),
    )
    return ConfigStore(test_settings, target=ExecutionTarget(uses_wsl=False))


@pytest.fixture
async def client(mock_cli, config_store, monkeypatch):
    """Async test client with the mock CLI runner and a temp config store."""
    import importlib

    for name in _ROUTER_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "cli_runner", mock_cli)
    for name in _STORE_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "config_store", config_store)

    from adapter.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
