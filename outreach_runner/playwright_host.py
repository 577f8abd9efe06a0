"""Playwright-backed AutomationHost driving a persistent Chromium profile."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Any, Sequence

from outreach_runner.errors import RunnerError
from outreach_runner.locators import LocatorStrategy
from utils.log_utils import tprint
from utils.settings_store import deep_log, get_settings, is_deep_logging

PLAYWRIGHT_MISSING = (
    "Playwright not installed. Install with: pip install playwright && playwright install chromium"
)


class PlaywrightHost:
    """Owns one browser page. ``navigate`` counts as a context teardown.

    The controller watches ``navigations`` to know when a runner detached
    and a fresh one has to pick the run back up on the new page.
    """

    def __init__(self, settings: dict | None = None) -> None:
        self._settings = settings or get_settings()
        self._playwright = None
        self._browser = None
        self._page = None
        self._initialized = False
        self.navigations = 0

    # ------------------------------------------------------------------
    # Lazy initialisation
    # ------------------------------------------------------------------

    async def _ensure_page(self):
        if self._initialized and self._page is not None and not self._page.is_closed():
            return self._page
        try:
            from playwright.async_api import async_playwright
        except ModuleNotFoundError as exc:
            raise RunnerError("HOST_PLAYWRIGHT_MISSING", PLAYWRIGHT_MISSING) from exc

        profile_dir = self._settings.get(
            "playwright_profile_dir", os.path.join("user_data", "playwright_profile")
        )
        headless = bool(self._settings.get("playwright_headless", False))
        Path(profile_dir).mkdir(parents=True, exist_ok=True)

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=profile_dir,
                headless=headless,
                accept_downloads=False,
            )
        except Exception as exc:
            await self._playwright.stop()
            self._playwright = None
            raise RunnerError(
                "HOST_LAUNCH_FAILED",
                f"Failed to launch browser: {exc}\n"
                "If Chromium is not installed, run: playwright install chromium",
            ) from exc
        self._page = self._browser.pages[0] if self._browser.pages else await self._browser.new_page()
        self._initialized = True
        tprint("[HOST] Playwright browser context initialized")
        return self._page

    async def shutdown(self) -> None:
        if self._browser:
            try:
                await self._browser.close()
            except Exception:
                pass
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception:
                pass
        self._browser = None
        self._page = None
        self._playwright = None
        self._initialized = False

    # ------------------------------------------------------------------
    # AutomationHost
    # ------------------------------------------------------------------

    async def current_url(self) -> str:
        page = await self._ensure_page()
        return page.url or ""

    async def navigate(self, url: str) -> None:
        page = await self._ensure_page()
        self.navigations += 1
        tprint(f"[HOST] Navigating to {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except Exception as exc:
            screenshot_path = await self._save_error_screenshot("navigate")
            raise RunnerError("HOST_UNEXPECTED", str(exc), screenshot_path) from exc

    async def wait_until_ready(self) -> None:
        """Block until the page left by the last navigation finished loading."""
        page = await self._ensure_page()
        try:
            await page.wait_for_load_state("domcontentloaded")
        except Exception as exc:
            tprint(f"[HOST][WARN] Load state wait failed: {exc}")

    async def locate(self, strategies: Sequence[LocatorStrategy], scope: Any = None) -> Any | None:
        page = await self._ensure_page()
        for strategy in strategies:
            root = page if strategy.page_wide or scope is None else scope
            for handle in await root.query_selector_all(strategy.selector):
                if strategy.text is not None:
                    text = (await handle.inner_text() or "").strip()
                    if text != strategy.text:
                        continue
                if strategy.visible_only and not await handle.is_visible():
                    continue
                if is_deep_logging():
                    deep_log(f"[DEEP][HOST] {strategy.name} -> {strategy.selector}")
                return handle
        return None

    async def click(self, element: Any) -> None:
        await element.click()

    async def set_text(self, element: Any, text: str) -> None:
        await element.fill(text)

    async def dispatch_change_signal(self, element: Any) -> None:
        await element.dispatch_event("input")
        await element.dispatch_event("change")

    async def press(self, element: Any | None, key: str) -> None:
        if element is not None:
            await element.press(key)
            return
        page = await self._ensure_page()
        await page.keyboard.press(key)

    async def text_of(self, element: Any) -> str:
        return (await element.inner_text() or "").strip()

    async def attribute(self, element: Any, name: str) -> str | None:
        return await element.get_attribute(name)

    async def is_visible(self, element: Any) -> bool:
        return await element.is_visible()

    async def scroll(self, pixels: int) -> None:
        page = await self._ensure_page()
        await page.mouse.wheel(0, pixels)

    async def sleep(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    async def auth_cookies(self) -> dict[str, str]:
        """Cookies for the platform origin, keyed by name."""
        await self._ensure_page()
        origin = self._settings.get("platform_base_url", "")
        cookies = await self._browser.cookies(origin) if origin else await self._browser.cookies()
        return {cookie["name"]: cookie["value"] for cookie in cookies}

    # ------------------------------------------------------------------
    # Error handling helpers
    # ------------------------------------------------------------------

    async def _save_error_screenshot(self, label: str) -> str | None:
        try:
            screenshots_dir = Path("user_data", "error_screenshots")
            screenshots_dir.mkdir(parents=True, exist_ok=True)
            ts = int(time.time())
            path = str(screenshots_dir / f"{label}_{ts}.png")
            if self._page and not self._page.is_closed():
                await self._page.screenshot(path=path)
                tprint(f"[HOST] Error screenshot saved: {path}")
                return path
        except Exception as ss_exc:
            tprint(f"[HOST] Failed to save screenshot: {ss_exc}")
        return None
