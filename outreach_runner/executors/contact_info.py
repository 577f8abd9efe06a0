"""Contact detail extraction."""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable

from outreach_runner.actions import ActionResult, ScheduledAction
from outreach_runner.executors.base import ProfileActionExecutor
from outreach_runner.host import AutomationHost
from outreach_runner.locators import LocatorBook
from utils.log_utils import tprint

EmailSink = Callable[[str, str], Awaitable[object]]


class EmailExecutor(ProfileActionExecutor):
    """Read the prospect's email from the Contact Info overlay.

    A profile without contact info or without an email is a successful
    action with ``email=None``.
    """

    action_type = "email"

    def __init__(
        self,
        host: AutomationHost,
        locators: LocatorBook,
        rng: random.Random | None = None,
        email_sink: EmailSink | None = None,
    ) -> None:
        super().__init__(host, locators, rng=rng)
        self._email_sink = email_sink

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.settle(3000)
        info = await self._page.extract_email()
        if info.email:
            await self._save_email(action, info.email)
        return ActionResult.ok(info.message, email=info.email)

    async def _save_email(self, action: ScheduledAction, email: str) -> None:
        public_id = action.target.public_id
        if not self._email_sink or not public_id:
            return
        try:
            await self._email_sink(public_id, email)
        except Exception as exc:
            # The extracted value is still reported through the action result.
            tprint(f"[EXECUTOR][WARN] Failed to save email for {public_id}: {exc}")
