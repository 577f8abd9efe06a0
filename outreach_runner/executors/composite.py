"""Multi-step actions that skip steps whose goal is already met."""

from __future__ import annotations

from typing import Any

from outreach_runner.actions import ActionResult, ScheduledAction
from outreach_runner.executors.base import ProfileActionExecutor
from outreach_runner.executors.contact_info import EmailExecutor


class ConnectMessageExecutor(ProfileActionExecutor):
    """Message when already connected, otherwise send a connection request."""

    action_type = "connect_message"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.settle(3000)
        container = await self._page.container()
        await self._page.settle(2000)
        button = await self._page.message_button(container, retries=3)
        if button is not None:
            text = (action.payload.get("connected_message") or "").strip()
            if not text:
                return ActionResult.ok(
                    "Already connected but no message template provided",
                    executed_action="none",
                )
            await self._page.send_message(button, text)
            return ActionResult.ok("Message sent (already connected)", executed_action="message")

        if await self._page.is_pending(container):
            return ActionResult.ok("Connection request already pending", executed_action="none")
        connect = await self._page.find_connect(container)
        if connect is None:
            return ActionResult.failed("Could not find Connect or More button")
        result = await self._page.send_invitation(
            connect, action.payload.get("invite_message"), strict=False
        )
        if not result.success:
            return result
        return ActionResult.ok(result.message, executed_action="invite")


class VisitFollowConnectExecutor(ProfileActionExecutor):
    """Warm-up sequence: visit, follow, then connect."""

    action_type = "visit_follow_connect"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        await self._page.settle(3000)
        container = await self._page.container()
        await self._page.settle(2000)
        await self._page.visit()

        follow_outcome = await self._page.follow(container)
        await self._page.settle(1000, 2000)
        steps: dict[str, Any] = {"follow": follow_outcome}

        if await self._page.is_pending(container):
            return ActionResult.ok("Visited, followed. Connection already pending.", **steps)
        if await self._page.message_button(container, retries=3) is not None:
            return ActionResult.ok("Visited, followed. Already connected.", **steps)

        connect = await self._page.find_connect(container)
        if connect is None:
            return ActionResult.ok("Visited and followed. Connect button not available.", **steps)
        result = await self._page.send_invitation(
            connect, action.payload.get("invite_message"), strict=False
        )
        if not result.success:
            return result
        suffix = "" if result.details.get("with_note") else " (no note)"
        return ActionResult.ok(f"Visited, followed, and connection request sent{suffix}", **steps)


class EmailMessageExecutor(EmailExecutor):
    """Use a known email, else extract one, else fall back to a platform message."""

    action_type = "email_message"

    async def perform(self, action: ScheduledAction) -> ActionResult:
        payload = action.payload
        subject = payload.get("email_subject")
        body = payload.get("email_body")
        known = (payload.get("prospect_email") or "").strip()
        if "@" in known:
            return ActionResult.ok(
                f"Email ready to send to {known}",
                executed_action="email",
                email=known,
                subject=subject,
                body=body,
            )

        await self._page.settle(2000)
        info = await self._page.extract_email()
        if info.email and "@" in info.email:
            await self._save_email(action, info.email)
            return ActionResult.ok(
                f"Extracted email: {info.email}",
                executed_action="extract_email",
                email=info.email,
                subject=subject,
                body=body,
            )
        return await self._send_fallback_message(action)

    async def _send_fallback_message(self, action: ScheduledAction) -> ActionResult:
        text = (action.payload.get("fallback_message") or "").strip()
        if not text:
            return ActionResult.ok(
                "No email found and no fallback message configured", executed_action="none"
            )
        container = await self._page.container()
        button = await self._page.message_button(container, retries=1)
        if button is None:
            return ActionResult.ok(
                "No email found. Not connected, cannot send message.", executed_action="none"
            )
        await self._page.send_message(button, text)
        return ActionResult.ok(
            "No email found, sent LinkedIn message instead", executed_action="message"
        )
