"""Route scheduled actions to their executors."""

from __future__ import annotations

import random

from outreach_runner.actions import ActionResult, ScheduledAction
from outreach_runner.errors import UnknownActionType
from outreach_runner.executors.base import ActionExecutor
from outreach_runner.executors.composite import (
    ConnectMessageExecutor,
    EmailMessageExecutor,
    VisitFollowConnectExecutor,
)
from outreach_runner.executors.contact_info import EmailExecutor, EmailSink
from outreach_runner.executors.profile_actions import (
    FollowExecutor,
    InviteExecutor,
    MessageExecutor,
    VisitExecutor,
)
from outreach_runner.host import AutomationHost
from outreach_runner.locators import LocatorBook
from utils.log_utils import tprint


class ExecutorRegistry(ActionExecutor):
    def __init__(self, executors: dict[str, ActionExecutor] | None = None) -> None:
        self._executors: dict[str, ActionExecutor] = dict(executors or {})

    def register(self, action_type: str, executor: ActionExecutor) -> None:
        self._executors[action_type] = executor

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._executors

    @property
    def action_types(self) -> list[str]:
        return sorted(self._executors)

    def get(self, action_type: str) -> ActionExecutor:
        executor = self._executors.get(action_type)
        if executor is None:
            raise UnknownActionType(action_type)
        return executor

    async def execute(self, action: ScheduledAction) -> ActionResult:
        try:
            executor = self.get(action.action_type)
        except UnknownActionType as exc:
            tprint(f"[EXECUTOR][WARN] {exc}")
            return ActionResult.failed(str(exc), retry=False)
        try:
            return await executor.execute(action)
        except Exception as exc:
            tprint(f"[EXECUTOR][ERROR] {action.action_type} raised: {exc}")
            return ActionResult.failed(f"Executor error: {exc}")


def build_default_registry(
    host: AutomationHost,
    locators: LocatorBook,
    *,
    rng: random.Random | None = None,
    email_sink: EmailSink | None = None,
) -> ExecutorRegistry:
    registry = ExecutorRegistry()
    for executor_cls in (
        VisitExecutor,
        InviteExecutor,
        MessageExecutor,
        FollowExecutor,
        ConnectMessageExecutor,
        VisitFollowConnectExecutor,
    ):
        registry.register(executor_cls.action_type, executor_cls(host, locators, rng=rng))
    registry.register("email", EmailExecutor(host, locators, rng=rng, email_sink=email_sink))
    registry.register(
        "email_message", EmailMessageExecutor(host, locators, rng=rng, email_sink=email_sink)
    )
    return registry
