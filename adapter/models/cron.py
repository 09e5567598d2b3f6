"""Cron job request models (mirrors ``openclaw cron add`` flags)."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

# Values passed as CLI tokens: no leading dash so they can't become flags.
# Free text (names, messages, cron expressions) is attached as --flag=value
# instead, so it is never parsed as an option.
_SAFE_VALUE = r"^[^-\s][^\s]*$"


class ScheduleAt(BaseModel):
    kind: Literal["at"]
    at: str = Field(pattern=_SAFE_VALUE, description='ISO 8601 or relative ("20m")')


class ScheduleEvery(BaseModel):
    kind: Literal["every"]
    every_ms: int = Field(alias="everyMs", gt=0)

    model_config = {"populate_by_name": True}


class ScheduleCron(BaseModel):
    kind: Literal["cron"]
    expr: str = Field(min_length=1, description="5-field cron expression")
    tz: Optional[str] = Field(default=None, pattern=_SAFE_VALUE)


CronSchedule = Union[ScheduleAt, ScheduleEvery, ScheduleCron]


class PayloadSystemEvent(BaseModel):
    kind: Literal["systemEvent"]
    text: str


class PayloadAgentTurn(BaseModel):
    kind: Literal["agentTurn"]
    message: str


CronPayload = Union[PayloadSystemEvent, PayloadAgentTurn]


class DeliveryMode(str, Enum):
    announce = "announce"
    webhook = "webhook"
    none = "none"


class CronDelivery(BaseModel):
    mode: DeliveryMode
    channel: Optional[str] = Field(default=None, pattern=_SAFE_VALUE)
    to: Optional[str] = None
    best_effort: bool = Field(default=False, alias="bestEffort")

    model_config = {"populate_by_name": True}


class WakeMode(str, Enum):
    now = "now"
    next_heartbeat = "next-heartbeat"


class SessionTarget(str, Enum):
    main = "main"
    isolated = "isolated"


class CronAddRequest(BaseModel):
    """Request body for POST /api/cron/add."""

    name: str = Field(min_length=1)
    description: Optional[str] = None
    schedule: CronSchedule = Field(discriminator="kind")
    session_target: SessionTarget = Field(default=SessionTarget.main, alias="sessionTarget")
    wake_mode: Optional[WakeMode] = Field(default=None, alias="wakeMode")
    payload: CronPayload = Field(discriminator="kind")
    delivery: Optional[CronDelivery] = None
    agent_id: Optional[str] = Field(default=None, alias="agentId", pattern=_SAFE_VALUE)
    delete_after_run: bool = Field(default=False, alias="deleteAfterRun")

    model_config = {"populate_by_name": True}

    def to_tokens(self) -> list[str]:
        """Assemble ``openclaw cron add`` arguments from the validated fields."""
        args = ["cron", "add", f"--name={self.name}"]

        if isinstance(self.schedule, ScheduleAt):
            args += ["--at", self.schedule.at]
        elif isinstance(self.schedule, ScheduleCron):
            args.append(f"--cron={self.schedule.expr}")
            if self.schedule.tz:
                args += ["--tz", self.schedule.tz]
        else:
            args += ["--every", str(self.schedule.every_ms)]

        args += ["--session", self.session_target.value]

        if isinstance(self.payload, PayloadSystemEvent):
            args.append(f"--system-event={self.payload.text}")
        else:
            args.append(f"--message={self.payload.message}")

        if self.wake_mode is not None:
            args += ["--wake", self.wake_mode.value]

        if self.delivery is not None:
            if self.delivery.mode is DeliveryMode.announce:
                args.append("--announce")
                if self.delivery.channel:
                    args += ["--channel", self.delivery.channel]
                if self.delivery.to:
                    args.append(f"--to={self.delivery.to}")
            elif self.delivery.mode is DeliveryMode.webhook and self.delivery.to:
                args.append(f"--webhook={self.delivery.to}")

        if self.agent_id:
            args += ["--agent", self.agent_id]
        if self.delete_after_run:
            args.append("--delete-after-run")
        return args


class CronRunRequest(BaseModel):
    job_id: str = Field(alias="jobId", pattern=_SAFE_VALUE)
    mode: Optional[Literal["force", "due"]] = None

    model_config = {"populate_by_name": True}
