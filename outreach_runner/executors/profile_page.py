"""Step-level helpers for the profile page, shared by all profile executors."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from outreach_runner.actions import ActionResult
from outreach_runner.host import AutomationHost
from outreach_runner.locators import LocatorBook
from utils.log_utils import tprint

CONTAINER_RETRIES = 5
MODAL_RETRIES = 8

FOLLOW_ALREADY = "already"
FOLLOW_DONE = "followed"
FOLLOW_UNAVAILABLE = "unavailable"


@dataclass
class ContactInfo:
    email: str | None
    message: str


class ProfilePage:
    def __init__(
        self,
        host: AutomationHost,
        locators: LocatorBook,
        rng: random.Random | None = None,
    ) -> None:
        self._host = host
        self._locators = locators
        self._rng = rng or random.Random()

    async def settle(self, low_ms: int, high_ms: int | None = None) -> None:
        ms = low_ms if high_ms is None else self._rng.randint(low_ms, high_ms)
        await self._host.sleep(ms)

    async def find(
        self,
        name: str,
        scope: Any = None,
        retries: int | None = None,
        delay_ms: int | None = None,
    ) -> Any | None:
        result = await self._locators.chain(name, retries, delay_ms).locate(scope)
        return result.element

    async def require(self, name: str, scope: Any = None, retries: int | None = None) -> Any:
        return await self._locators.chain(name, retries).require(scope)

    async def container(self) -> Any:
        return await self.require("profile_actions", retries=CONTAINER_RETRIES)

    async def visit(self) -> None:
        await self.settle(2000, 4000)
        await self._host.scroll(self._rng.randint(300, 600))
        await self.settle(1000, 2000)

    async def is_pending(self, container: Any) -> bool:
        return await self.find("pending_button", container, retries=1) is not None

    async def is_following(self, container: Any) -> bool:
        return await self.find("following_button", container, retries=1) is not None

    async def message_button(self, container: Any, retries: int = 3) -> Any | None:
        """Visible Message button, which only 1st degree connections show."""
        button = await self.find("message_button", container, retries=retries, delay_ms=1000)
        if button is None or not await self._host.is_visible(button):
            return None
        return button

    async def open_more_menu(self, container: Any) -> bool:
        more = await self.find("more_button", container, retries=3)
        if more is None:
            return False
        await self._host.click(more)
        await self.settle(2000)
        return True

    async def find_connect(self, container: Any) -> Any | None:
        connect = await self.find("connect_button", container, retries=3, delay_ms=1000)
        if connect is not None:
            return connect
        tprint("[EXECUTOR] Connect button not visible, checking More menu")
        if not await self.open_more_menu(container):
            return None
        return await self.find("dropdown_connect", retries=1)

    async def follow(self, container: Any) -> str:
        if await self.is_following(container):
            return FOLLOW_ALREADY
        button = await self.find("follow_button", container, retries=1)
        if button is None:
            if not await self.open_more_menu(container):
                return FOLLOW_UNAVAILABLE
            button = await self.find("dropdown_follow", retries=1)
            if button is None:
                await self._host.press(None, "Escape")
                return FOLLOW_UNAVAILABLE
        await self._host.click(button)
        await self.settle(1000)
        return FOLLOW_DONE

    async def send_invitation(
        self, connect: Any, note: str | None, *, strict: bool = True
    ) -> ActionResult:
        """Click Connect and finish the invitation modal.

        With ``strict`` a requested note that cannot be attached fails the
        invitation; otherwise it is sent without the note.
        """
        await self._host.click(connect)
        await self.settle(3000)
        add_note = await self.find("invite_add_note", retries=1)
        without_note = await self.find("invite_send_without_note", retries=1)
        if add_note is None and without_note is None:
            dismiss = await self.find("modal_dismiss", retries=1)
            if dismiss is not None:
                await self._host.click(dismiss)
            return ActionResult.failed(
                "LinkedIn connection limit reached or modal did not appear", retry=False
            )

        note = (note or "").strip()
        if note and add_note is not None:
            await self._host.click(add_note)
            await self.settle(2000)
            field = await self.require("invite_note_field")
            await self._host.set_text(field, note)
            await self._host.dispatch_change_signal(field)
            await self.settle(500)
            send = await self.require("invite_send")
            await self._host.click(send)
            await self.settle(1000)
            return ActionResult.ok("Connection request sent with note", with_note=True)
        if note and strict:
            return ActionResult.failed("Could not find Add a note button")
        if without_note is None:
            return ActionResult.failed("Could not find Send without a note button")
        await self._host.click(without_note)
        await self.settle(1000)
        return ActionResult.ok("Connection request sent", with_note=False)

    async def send_message(self, message_button: Any, text: str) -> None:
        close_existing = await self.find("open_conversation_close", retries=1)
        if close_existing is not None:
            await self._host.click(close_existing)
            await self.settle(500)
        await self._host.click(message_button)
        await self.settle(3000)
        textbox = await self.require("message_textbox")
        await self._host.set_text(textbox, text)
        await self._host.dispatch_change_signal(textbox)
        await self.settle(1000)
        send = await self.find("message_send", retries=5, delay_ms=500)
        if send is not None:
            await self._host.click(send)
        else:
            tprint("[EXECUTOR] Send button not ready, submitting with Control+Enter")
            await self._host.press(textbox, "Control+Enter")
        await self.settle(1000)
        close = await self.find("message_close", retries=1)
        if close is not None:
            await self._host.click(close)
            await self.settle(500)

    async def extract_email(self) -> ContactInfo:
        opener = await self.find("contact_info_opener", retries=3)
        if opener is None:
            return ContactInfo(None, "Contact Info not available")
        await self._host.click(opener)
        modal = await self.find("contact_info_modal", retries=MODAL_RETRIES)
        if modal is None:
            return ContactInfo(None, "Contact Info modal did not open")
        await self.settle(3000)
        link = await self.find("contact_info_email", modal, retries=5, delay_ms=1000)
        email = None
        if link is not None:
            href = await self._host.attribute(link, "href") or ""
            email = href.replace("mailto:", "").strip() or None
        dismiss = await self.find("modal_dismiss", retries=1)
        if dismiss is not None:
            await self._host.click(dismiss)
            await self.settle(300)
        if email:
            return ContactInfo(email, f"Email extracted: {email}")
        return ContactInfo(None, "No email found for this user")
