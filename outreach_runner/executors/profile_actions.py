"""Single-step profile actions: visit, follow, invite, message."""

from __future__ import annotations

from outreach_runner.actions import ActionResult, ScheduledAction
from outreach_runner.executors.base import ProfileActionExecutor
from outreach_runner.executors.profile_page import FOLLOW_ALREADY, FOLLOW_DONE


class VisitExecutor(ProfileActionExecutor):
    action_type = "visit"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.visit()
        return ActionResult.ok(f"Visited profile: {action.target.full_name}")


class FollowExecutor(ProfileActionExecutor):
    action_type = "follow"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.settle(2000)
        container = await self._page.container()
        outcome = await self._page.follow(container)
        if outcome == FOLLOW_ALREADY:
            return ActionResult.ok("Already following this person", executed_action="none")
        if outcome == FOLLOW_DONE:
            return ActionResult.ok(f"Now following {action.target.full_name}")
        return ActionResult.failed("Could not find Follow or More button in main profile actions")


class InviteExecutor(ProfileActionExecutor):
    """Connection request, with a note when ``payload['message']`` is set."""

    action_type = "invite"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.settle(3000)
        container = await self._page.container()
        if await self._page.is_pending(container):
            return ActionResult.ok("Connection request already pending", executed_action="none")
        connect = await self._page.find_connect(container)
        if connect is None:
            return ActionResult.failed("Could not find Connect or More button")
        result = await self._page.send_invitation(
            connect, action.payload.get("message"), strict=True
        )
        if not result.success:
            return result
        name = action.target.full_name
        if result.details.get("with_note"):
            return ActionResult.ok(f"Connection request sent with note to {name}")
        return ActionResult.ok(f"Connection request sent to {name}")


class MessageExecutor(ProfileActionExecutor):
    action_type = "message"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        text = (action.payload.get("message") or "").strip()
        if not text:
            return ActionResult.failed("No message content provided", retry=False)
        await self._page.settle(4000)
        container = await self._page.container()
        button = await self._page.message_button(container, retries=5)
        if button is None:
            return ActionResult.failed(
                "Message button not found (user may not be a 1st degree connection)",
                retry=False,
            )
        await self._page.send_message(button, text)
        return ActionResult.ok(f"Message sent to {action.target.full_name}")
