"""Serializable runner state persisted across execution contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from outreach_runner.actions import ScheduledAction

STATE_KEY = "outreach_runner.state"


class RunnerPhase(str, Enum):
    INIT = "init"
    VERIFYING = "verifying"
    POLLING = "polling"
    EXECUTING = "executing"
    WAITING = "waiting"
    PAUSED = "paused"
    STOPPED = "stopped"


ACTIVE_PHASES = frozenset(
    {RunnerPhase.VERIFYING, RunnerPhase.POLLING, RunnerPhase.EXECUTING, RunnerPhase.WAITING}
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class RunnerStats:
    completed: int = 0
    failed: int = 0
    started_at: str | None = None


@dataclass
class RunnerState:
    phase: RunnerPhase = RunnerPhase.INIT
    current_action: ScheduledAction | None = None
    verified: bool = False
    stats: RunnerStats = field(default_factory=RunnerStats)
    stop_reason: str | None = None
    awaiting_context_switch: bool = False
    context_switches: int = 0

    @property
    def is_running(self) -> bool:
        return self.phase in ACTIVE_PHASES

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current_action": self.current_action.to_dict() if self.current_action else None,
            "verified": self.verified,
            "stats": {
                "completed": self.stats.completed,
                "failed": self.stats.failed,
                "started_at": self.stats.started_at,
            },
            "stop_reason": self.stop_reason,
            "awaiting_context_switch": self.awaiting_context_switch,
            "context_switches": self.context_switches,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RunnerState":
        if not data:
            return cls()
        current = data.get("current_action")
        stats = data.get("stats") or {}
        return cls(
            phase=RunnerPhase(data.get("phase", RunnerPhase.INIT.value)),
            current_action=ScheduledAction.from_dict(current) if current else None,
            verified=bool(data.get("verified", False)),
            stats=RunnerStats(
                completed=int(stats.get("completed", 0)),
                failed=int(stats.get("failed", 0)),
                started_at=stats.get("started_at"),
            ),
            stop_reason=data.get("stop_reason"),
            awaiting_context_switch=bool(data.get("awaiting_context_switch", False)),
            context_switches=int(data.get("context_switches", 0)),
        )


def load_state(store) -> RunnerState | None:
    raw = store.get(STATE_KEY)
    if not raw:
        return None
    return RunnerState.from_dict(raw)
