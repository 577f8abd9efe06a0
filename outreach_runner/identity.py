"""Detect which platform account the host is logged into."""

from __future__ import annotations

from outreach_runner.host import AutomationHost
from outreach_runner.locators import LocatorBook
from outreach_runner.web_constants import FEED_PATH, PROFILE_PATH_MARKER
from utils.log_utils import tprint
from utils.settings_store import get_settings


class AccountIdentity:
    """Finds the logged-in member's own profile URL on the current page.

    Only links that always point at the viewer are used: the feed's profile
    card, the identity module, and the Me menu. Never the profile being viewed.
    """

    def __init__(
        self,
        host: AutomationHost,
        locators: LocatorBook,
        settings: dict | None = None,
    ) -> None:
        self._host = host
        self._locators = locators
        settings = settings or get_settings()
        self.feed_url = settings.get("platform_base_url", "").rstrip("/") + FEED_PATH

    async def _href(self, element) -> str | None:
        href = await self._host.attribute(element, "href")
        if href and PROFILE_PATH_MARKER in href:
            return href
        return None

    async def detect_profile_url(self) -> str | None:
        link = await self._locators.chain("self_profile_link", retries=1).locate()
        if link.found:
            href = await self._href(link.element)
            if href:
                return href

        menu = await self._locators.chain("me_menu", retries=1).locate()
        if not menu.found:
            tprint("[RUNNER][WARN] Could not find own profile link or Me menu")
            return None
        await self._host.click(menu.element)
        await self._host.sleep(1500)
        try:
            item = await self._locators.chain("me_menu_profile_link", retries=1).locate()
            if item.found:
                return await self._href(item.element)
            return None
        finally:
            await self._host.press(None, "Escape")
            await self._host.sleep(200)

    async def is_on_feed(self) -> bool:
        return "/feed" in (await self._host.current_url() or "")

    async def go_to_feed(self) -> None:
        await self._host.navigate(self.feed_url)

    async def sleep(self, ms: int) -> None:
        await self._host.sleep(ms)
