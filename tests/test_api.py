"""Integration tests exercising the full API with a mock CLI runner."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from adapter.models.commands import OutputChunk, StreamKind
from adapter.routers.logs import log_events, parse_log_lines
from adapter.routers.system import check_memory, format_bytes, format_uptime
from adapter.services.config_store import hash_config
from adapter.services.executor import StartFailure, StartFailureKind
from tests.mock_cli import LOGS_LINES


# ── health / system ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["service"] == "openclaw-control-plane-adapter"
    assert data["wsl"] is False


@pytest.mark.asyncio
async def test_system_version(client):
    resp = await client.get("/api/system/version")
    data = resp.json()
    assert data["ok"] is True
    assert data["data"]["name"] == "openclaw-control-plane-adapter"
    assert "pythonVersion" in data["data"]


@pytest.mark.asyncio
async def test_system_metrics(client):
    data = (await client.get("/api/system/metrics")).json()["data"]
    assert data["uptime"]["seconds"] >= 0
    assert data["system"]["platform"]
    assert data["memory"]["rss"].endswith(("B", "KB", "MB", "GB"))
    assert data["system"]["totalMemory"]


def test_format_uptime():
    assert format_uptime(90_061) == "1d 1h 1m 1s"


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(3 * 1024 ** 3) == "3 GB"


@pytest.mark.parametrize("percent,healthy,word", [
    (40.0, True, "normal"),
    (80.0, True, "high"),
    (95.0, False, "critical"),
])
def test_check_memory(percent, healthy, word):
    check = check_memory(percent)
    assert check["healthy"] is healthy
    assert word in check["message"]


@pytest.mark.asyncio
async def test_system_health(client, monkeypatch):
    monkeypatch.setattr(
        "adapter.routers.system.psutil.virtual_memory",
        lambda: SimpleNamespace(percent=42.0, total=8 << 30, available=4 << 30),
    )
    resp = await client.get("/api/system/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["data"]["status"] == "healthy"
    assert set(data["data"]["checks"]) == {"memory", "process"}


@pytest.mark.asyncio
async def test_system_health_degraded(client, monkeypatch):
    monkeypatch.setattr(
        "adapter.routers.system.psutil.virtual_memory",
        lambda: SimpleNamespace(percent=97.5, total=8 << 30, available=1 << 20),
    )
    resp = await client.get("/api/system/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["ok"] is False
    assert data["data"]["status"] == "degraded"
    assert data["data"]["checks"]["memory"]["healthy"] is False


@pytest.mark.asyncio
async def test_unhandled_error_envelope(client, mock_cli, monkeypatch):
    async def explode(tokens, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(mock_cli, "run", explode)
    resp = await client.post("/api/gateway/restart")
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "kaboom"}


# ── gateway ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_gateway_status_json(client, mock_cli):
    resp = await client.get("/api/gateway/status")
    data = resp.json()
    assert data["ok"] is True
    assert data["data"]["running"] is True
    assert data["data"]["pid"] == 4242
    assert mock_cli.sent_commands == [["gateway", "status", "--json"]]


@pytest.mark.asyncio
async def test_gateway_status_not_running(client, mock_cli):
    mock_cli.add_response("gateway status --json", stderr="Connection refused", exit_code=1)
    data = (await client.get("/api/gateway/status")).json()
    assert data["ok"] is True
    assert data["data"]["running"] is False
    assert data["data"]["rpcProbe"] == "fail"
    assert data["data"]["error"] == "Connection refused"


@pytest.mark.asyncio
async def test_gateway_status_text_fallback(client, mock_cli):
    mock_cli.add_response("gateway status --json", stdout="Gateway is running on :18789\n")
    data = (await client.get("/api/gateway/status")).json()["data"]
    assert data["running"] is True
    assert data["rpcProbe"] == "ok"
    assert data["raw"].startswith("Gateway is running")


@pytest.mark.asyncio
async def test_gateway_health(client):
    data = (await client.get("/api/gateway/health")).json()
    assert data["data"]["exitCode"] == 0
    assert "Gateway: running" in data["data"]["raw"]


@pytest.mark.asyncio
async def test_gateway_doctor(client):
    data = (await client.get("/api/gateway/doctor")).json()["data"]
    assert data["passed"] is True
    assert "All checks passed" in data["raw"]
    assert "node 20" in data["raw"]


@pytest.mark.asyncio
async def test_gateway_restart_failure(client, mock_cli):
    mock_cli.add_response("gateway restart", stderr="Command timed out after 60000ms", exit_code=124)
    data = (await client.post("/api/gateway/restart")).json()
    assert data["ok"] is False
    assert data["error"] == "Command timed out after 60000ms"


@pytest.mark.asyncio
async def test_gateway_channels_status(client):
    data = (await client.get("/api/gateway/channels-status")).json()["data"]
    assert "telegram: ok" in data["raw"]


@pytest.mark.asyncio
async def test_gateway_call(client, mock_cli):
    mock_cli.add_response("gateway call sessions.list", stdout='{"sessions": []}')
    resp = await client.post(
        "/api/gateway/call",
        json={"method": "sessions.list", "params": {"limit": 5}},
    )
    assert resp.json() == {"ok": True, "data": {"sessions": []}}
    assert mock_cli.sent_commands[-1] == [
        "gateway", "call", "sessions.list", "--params", '{"limit": 5}',
    ]


@pytest.mark.asyncio
async def test_gateway_call_rejects_bad_method(client, mock_cli):
    resp = await client.post("/api/gateway/call", json={"method": "--evil"})
    assert resp.status_code == 422
    assert mock_cli.sent_commands == []


# ── cron ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cron_list(client):
    data = (await client.get("/api/cron/list")).json()
    assert data["ok"] is True
    assert data["data"]["jobs"][0]["jobId"] == "job-1"


@pytest.mark.asyncio
async def test_cron_list_falls_back_to_disk(client, mock_cli, state_dir):
    mock_cli.add_response("cron list --json", stderr="gateway unreachable", exit_code=1)
    (state_dir / "cron").mkdir()
    (state_dir / "cron" / "jobs.json").write_text(json.dumps({"jobs": [{"jobId": "disk-1"}]}))

    data = (await client.get("/api/cron/list")).json()
    assert data["ok"] is True
    assert data["data"]["jobs"] == [{"jobId": "disk-1"}]
    assert "gateway unreachable" in data["warnings"][0]


@pytest.mark.asyncio
async def test_cron_list_failure_without_disk(client, mock_cli):
    mock_cli.add_response("cron list --json", stderr="gateway unreachable", exit_code=1)
    data = (await client.get("/api/cron/list")).json()
    assert data == {"ok": False, "error": "gateway unreachable"}


@pytest.mark.asyncio
async def test_cron_add(client, mock_cli):
    resp = await client.post("/api/cron/add", json={
        "name": "Morning brief",
        "schedule": {"kind": "cron", "expr": "0 7 * * *", "tz": "Europe/Berlin"},
        "sessionTarget": "isolated",
        "wakeMode": "now",
        "payload": {"kind": "agentTurn", "message": "Summarize today's calendar"},
        "delivery": {"mode": "announce", "channel": "telegram", "to": "@me"},
        "deleteAfterRun": True,
    })
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert mock_cli.sent_commands[-1] == [
        "cron", "add", "--name=Morning brief",
        "--cron=0 7 * * *", "--tz", "Europe/Berlin",
        "--session", "isolated",
        "--message=Summarize today's calendar",
        "--wake", "now",
        "--announce", "--channel", "telegram", "--to=@me",
        "--delete-after-run",
    ]


@pytest.mark.asyncio
async def test_cron_add_every_and_webhook(client, mock_cli):
    await client.post("/api/cron/add", json={
        "name": "ping",
        "schedule": {"kind": "every", "everyMs": 60000},
        "payload": {"kind": "systemEvent", "text": "tick"},
        "delivery": {"mode": "webhook", "to": "https://example.com/hook"},
    })
    assert mock_cli.sent_commands[-1] == [
        "cron", "add", "--name=ping", "--every", "60000",
        "--session", "main", "--system-event=tick",
        "--webhook=https://example.com/hook",
    ]


@pytest.mark.asyncio
async def test_cron_add_rejects_flag_injection(client, mock_cli):
    resp = await client.post("/api/cron/add", json={
        "name": "x",
        "schedule": {"kind": "at", "at": "--rm"},
        "payload": {"kind": "systemEvent", "text": "t"},
    })
    assert resp.status_code == 422
    assert mock_cli.sent_commands == []



@pytest.mark.asyncio
async def test_cron_add_free_text_stays_attached_to_its_flag(client, mock_cli):
    resp = await client.post("/api/cron/add", json={
        "name": "--delete-after-run",
        "schedule": {"kind": "cron", "expr": "--every 1"},
        "payload": {"kind": "agentTurn", "message": "- first item"},
    })
    assert resp.status_code == 200
    tokens = mock_cli.sent_commands[-1]
    assert "--name=--delete-after-run" in tokens
    assert "--cron=--every 1" in tokens
    assert "--message=- first item" in tokens
    assert "--delete-after-run" not in tokens
    assert not any(t.startswith("--every") for t in tokens)

@pytest.mark.asyncio
async def test_cron_add_error_falls_back_to_stdout(client, mock_cli):
    mock_cli.add_response("cron add", stdout="invalid cron expression", exit_code=1)
    data = (await client.post("/api/cron/add", json={
        "name": "bad",
        "schedule": {"kind": "cron", "expr": "nope"},
        "payload": {"kind": "systemEvent", "text": "t"},
    })).json()
    assert data["ok"] is False
    assert data["error"] == "invalid cron expression"


@pytest.mark.asyncio
async def test_cron_run_due(client, mock_cli):
    resp = await client.post("/api/cron/run", json={"jobId": "job-1", "mode": "due"})
    assert resp.json()["ok"] is True
    assert mock_cli.sent_commands[-1] == ["cron", "run", "job-1", "--due"]


@pytest.mark.asyncio
async def test_cron_runs(client, mock_cli):
    mock_cli.add_response("cron runs", stdout='{"runs": []}')
    data = (await client.get("/api/cron/runs", params={"jobId": "job-1", "limit": 10})).json()
    assert data == {"ok": True, "data": {"runs": []}}
    assert mock_cli.sent_commands[-1] == ["cron", "runs", "--id", "job-1", "--limit", "10"]


@pytest.mark.asyncio
async def test_cron_remove(client, mock_cli):
    resp = await client.delete("/api/cron/job-1")
    assert resp.json()["ok"] is True
    assert mock_cli.sent_commands[-1] == ["cron", "remove", "job-1"]


# ── skills ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_skills_list(client):
    data = (await client.get("/api/skills/list")).json()
    assert [s["name"] for s in data["data"]] == ["weather", "github"]


@pytest.mark.asyncio
async def test_skills_check(client):
    data = (await client.get("/api/skills/check")).json()
    assert data == {"ok": True, "data": {"raw": "2 skills ok\n"}}


@pytest.mark.asyncio
async def test_skills_info(client, mock_cli):
    mock_cli.add_response("skills info weather", stdout="weather: forecasts\n")
    data = (await client.get("/api/skills/info/weather")).json()
    assert data["data"]["raw"] == "weather: forecasts\n"


@pytest.mark.asyncio
async def test_skills_install(client, mock_cli):
    resp = await client.post("/api/skills/install", json={"slug": "@acme/weather"})
    assert resp.json()["ok"] is True
    assert mock_cli.sent_commands[-1] == ["clawhub", "install", "@acme/weather"]


@pytest.mark.asyncio
async def test_skills_install_rejects_bad_slug(client):
    resp = await client.post("/api/skills/install", json={"slug": "x; rm -rf /"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_skills_update_and_sync(client, mock_cli):
    await client.post("/api/skills/update-all")
    await client.post("/api/skills/sync")
    assert mock_cli.sent_commands == [
        ["clawhub", "update", "--all"],
        ["clawhub", "sync", "--all"],
    ]


@pytest.mark.asyncio
async def test_skills_create(client, state_dir):
    resp = await client.post("/api/skills/create", json={
        "name": "My Skill!",
        "content": "export default {}",
    })
    data = resp.json()
    assert data["ok"] is True
    created = state_dir / "skills" / "myskill.ts"
    assert data["data"]["path"] == str(created)
    assert created.read_text() == "export default {}"


@pytest.mark.asyncio
async def test_skills_create_rejects_empty_stem(client):
    data = (await client.post("/api/skills/create", json={"name": "!!!", "content": "x"})).json()
    assert data["ok"] is False


@pytest.mark.asyncio
async def test_skills_config_roundtrip(client, state_dir):
    resp = await client.put("/api/skills/config", json={
        "skillKey": "weather",
        "entry": {"enabled": True, "env": {"API_KEY": "k"}},
    })
    data = resp.json()
    assert data["ok"] is True
    assert data["data"] == {"enabled": True, "env": {"API_KEY": "k"}}
    assert (state_dir / "openclaw.json").exists()

    data = (await client.get("/api/skills/config")).json()
    assert data["data"]["entries"]["weather"]["enabled"] is True


@pytest.mark.asyncio
async def test_skills_locations(client, state_dir):
    (state_dir / "openclaw.json").write_text(json.dumps({
        "agents": {"defaults": {"workspace": "/work"}},
        "skills": {"load": {"extraDirs": ["/opt/a", "/opt/b"]}},
    }))
    data = (await client.get("/api/skills/locations")).json()["data"]
    paths = [p["path"] for p in data["precedence"]]
    assert paths == [
        "(built-in)", str(state_dir / "skills"), "/work/skills", "/opt/a", "/opt/b",
    ]


# ── channels ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_channels_list(client, state_dir):
    (state_dir / "openclaw.json").write_text(json.dumps({
        "channels": {"telegram": {"dmPolicy": "open"}, "discord": {"enabled": False}},
    }))
    data = {c["provider"]: c for c in (await client.get("/api/channels/list")).json()["data"]}
    assert data["telegram"]["enabled"] is True
    assert data["telegram"]["dmPolicy"] == "open"
    assert data["discord"]["configured"] is True
    assert data["discord"]["enabled"] is False
    assert data["slack"]["configured"] is False
    assert data["slack"]["dmPolicy"] == "pairing"


@pytest.mark.asyncio
async def test_channels_status(client, mock_cli):
    data = (await client.get("/api/channels/status")).json()
    assert data["data"]["exitCode"] == 0
    assert mock_cli.sent_commands[-1] == ["channels", "status", "--probe"]


@pytest.mark.asyncio
async def test_channel_update(client, state_dir):
    resp = await client.put("/api/channels/telegram", json={"botToken": "t", "dmPolicy": "open"})
    data = resp.json()
    assert data["ok"] is True
    assert "restart" in data["warnings"][0]
    saved = (state_dir / "openclaw.json").read_text()
    assert "botToken" in saved


@pytest.mark.asyncio
async def test_channel_update_unknown_provider(client):
    resp = await client.put("/api/channels/myspace", json={})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Unknown provider: myspace"}


# ── config ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_config_get_missing(client):
    data = (await client.get("/api/config")).json()["data"]
    assert data == {"raw": "{}", "parsed": {}, "hash": hash_config("{}")}


@pytest.mark.asyncio
async def test_config_put_and_get(client, state_dir):
    raw = "{ // gateway\n gateway: { port: 18789 } }"
    resp = await client.put("/api/config", json={"raw": raw})
    assert resp.status_code == 200
    assert resp.json()["data"]["hash"] == hash_config(raw)

    data = (await client.get("/api/config")).json()["data"]
    assert data["parsed"] == {"gateway": {"port": 18789}}
    assert data["hash"] == hash_config(raw)


@pytest.mark.asyncio
async def test_config_put_requires_raw(client):
    resp = await client.put("/api/config", json={"raw": ""})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_config_put_invalid(client, state_dir):
    resp = await client.put("/api/config", json={"raw": "{ nope"})
    assert resp.status_code == 400
    data = resp.json()
    assert data["ok"] is False
    assert data["warnings"]
    assert not (state_dir / "openclaw.json").exists()


@pytest.mark.asyncio
async def test_config_put_hash_conflict(client, state_dir):
    (state_dir / "openclaw.json").write_text('{"a": 1}')
    resp = await client.put("/api/config", json={"raw": '{"a": 2}', "baseHash": "stale"})
    assert resp.status_code == 409
    assert (state_dir / "openclaw.json").read_text() == '{"a": 1}'


@pytest.mark.asyncio
async def test_config_put_matching_hash(client, state_dir):
    (state_dir / "openclaw.json").write_text('{"a": 1}')
    resp = await client.put(
        "/api/config",
        json={"raw": '{"a": 2}', "baseHash": hash_config('{"a": 1}')},
    )
    assert resp.status_code == 200
    assert (state_dir / "openclaw.json.bak").read_text() == '{"a": 1}'


@pytest.mark.asyncio
async def test_config_patch(client, state_dir):
    (state_dir / "openclaw.json").write_text('{"gateway": {"port": 1, "bind": "lan"}, "old": true}')
    resp = await client.post(
        "/api/config/patch",
        json={"patch": {"gateway": {"port": 2}, "old": None}},
    )
    assert resp.json()["ok"] is True
    data = (await client.get("/api/config")).json()["data"]
    assert data["parsed"] == {"gateway": {"port": 2, "bind": "lan"}}


@pytest.mark.asyncio
async def test_config_validate(client):
    good = (await client.post("/api/config/validate", json={"raw": "{a: 1,}"})).json()
    bad = (await client.post("/api/config/validate", json={"raw": "{a:"})).json()
    assert good["data"] == {"valid": True}
    assert bad["data"]["valid"] is False
    assert "Invalid JSON5" in bad["data"]["error"]


# ── sessions ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_sessions(client):
    data = (await client.get("/api/sessions")).json()
    assert data["ok"] is True
    assert data["data"][0]["sessionId"] == "main"


@pytest.mark.asyncio
async def test_sessions_failure_has_warnings(client, mock_cli):
    mock_cli.add_response("sessions list --json", stderr="gateway down", exit_code=1)
    data = (await client.get("/api/sessions")).json()
    assert data["ok"] is False
    assert data["error"] == "gateway down"
    assert len(data["warnings"]) == 2


# ── logs ──────────────────────────────────────────────────────────────────


def test_parse_log_lines():
    entries = parse_log_lines(LOGS_LINES + "\n\n")
    assert len(entries) == 3
    assert entries[0]["message"] == "gateway ready"
    assert entries[1]["message"] == "plain text line"
    assert entries[1]["level"] == "info"


@pytest.mark.asyncio
async def test_recent_logs(client, mock_cli):
    mock_cli.add_response("logs --lines 5", stdout=LOGS_LINES)
    data = (await client.get("/api/logs", params={"lines": 5})).json()
    assert data["ok"] is True
    assert [e["level"] for e in data["data"]] == ["info", "info", "warn"]


@pytest.mark.asyncio
async def test_recent_logs_failure(client, mock_cli):
    mock_cli.add_response("logs --lines 100", stderr="no log file", exit_code=1)
    data = (await client.get("/api/logs")).json()
    assert data == {"ok": False, "error": "no log file"}


@pytest.mark.asyncio
async def test_log_events(client, mock_cli):
    mock_cli.stream_lines = [
        OutputChunk(stream=StreamKind.stdout, text="line one"),
        OutputChunk(stream=StreamKind.stdout, text=""),
        OutputChunk(stream=StreamKind.stderr, text="oops"),
        OutputChunk(stream=StreamKind.stdout, text="line two"),
    ]
    events = [event async for event in log_events(["logs", "--follow"])]
    assert events == [
        {"data": "line one"},
        {"data": json.dumps({"level": "error", "message": "oops"})},
        {"data": "line two"},
        {"event": "close", "data": "done"},
    ]
    assert mock_cli.streamed_commands == [["logs", "--follow"]]
    assert mock_cli.stream_closed is True


@pytest.mark.asyncio
async def test_log_events_consumer_stops_early(client, mock_cli):
    mock_cli.stream_lines = [
        OutputChunk(stream=StreamKind.stdout, text=f"line {n}") for n in range(10)
    ]
    events = log_events(["logs", "--follow"])
    first = await events.__anext__()
    await events.aclose()
    assert first == {"data": "line 0"}
    assert mock_cli.stream_closed is True


@pytest.mark.asyncio
async def test_log_events_start_failure(client, mock_cli, monkeypatch):
    async def failing_stream(tokens):
        raise StartFailure(StartFailureKind.not_found, "openclaw: not found")
        yield  # pragma: no cover

    monkeypatch.setattr(mock_cli, "stream", failing_stream)
    events = [event async for event in log_events(["logs", "--follow"])]
    assert json.loads(events[0]["data"]) == {"level": "error", "message": "openclaw: not found"}
    assert events[-1] == {"event": "close", "data": "done"}


@pytest.mark.asyncio
async def test_log_stream_endpoint(client, mock_cli):
    mock_cli.stream_lines = [OutputChunk(stream=StreamKind.stdout, text="gateway ready")]
    resp = await client.get("/api/logs/stream")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert "data: gateway ready" in resp.text
    assert "event: close" in resp.text
