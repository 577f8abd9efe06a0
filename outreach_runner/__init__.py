"""Durable action-queue runner for professional-network outreach."""

from outreach_runner.actions import ActionResult, Prospect, ScheduledAction
from outreach_runner.controller import RunnerController, build_controller
from outreach_runner.entity_graph import resolve_conversations, resolve_messages
from outreach_runner.rate_limiter import RateLimiter
from outreach_runner.runner import QueueRunner
from outreach_runner.state import RunnerPhase, RunnerState

__all__ = [
    "ActionResult",
    "Prospect",
    "QueueRunner",
    "RateLimiter",
    "RunnerController",
    "RunnerPhase",
    "RunnerState",
    "ScheduledAction",
    "build_controller",
    "resolve_conversations",
    "resolve_messages",
]
