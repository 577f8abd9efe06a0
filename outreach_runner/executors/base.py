"""Executor interfaces and the profile-positioning contract."""

from __future__ import annotations

import random
from urllib.parse import urlparse

from outreach_runner.actions import ActionResult, Prospect, ScheduledAction
from outreach_runner.errors import ElementNotFoundError, RunnerError, TransientNetworkError
from outreach_runner.executors.profile_page import ProfilePage
from outreach_runner.host import AutomationHost
from outreach_runner.locators import LocatorBook
from outreach_runner.web_constants import PROFILE_PATH_MARKER
from utils.log_utils import tprint
from utils.settings_store import deep_log, is_deep_logging

NAVIGATING_MESSAGE = "Navigating to profile"


def is_on_profile(current_url: str, prospect: Prospect) -> bool:
    if not current_url or PROFILE_PATH_MARKER not in current_url:
        return False
    if prospect.public_id and f"{PROFILE_PATH_MARKER}{prospect.public_id}" in current_url:
        return True
    path = urlparse(prospect.profile_url).path.rstrip("/") if prospect.profile_url else ""
    return bool(path) and path in current_url


class ActionExecutor:
    action_type: str = ""

    async def execute(self, action: ScheduledAction) -> ActionResult:
        raise NotImplementedError


class ProfileActionExecutor(ActionExecutor):
    """Base for actions performed on the prospect's profile page.

    ``execute`` checks the host position before any side effect. When the host
    is elsewhere it asks for navigation and returns a context-switch result;
    the action is re-entered from the top once the new page is live.
    Exceptions never escape: they become failed results.
    """

    def __init__(
        self,
        host: AutomationHost,
        locators: LocatorBook,
        rng: random.Random | None = None,
    ) -> None:
        self._host = host
        self._page = ProfilePage(host, locators, rng=rng)

    async def execute(self, action: ScheduledAction) -> ActionResult:
        prospect = action.target
        try:
            if not prospect.profile_url:
                return ActionResult.failed("Prospect has no profile URL", retry=False)
            current = await self._host.current_url()
            if not is_on_profile(current, prospect):
                tprint(f"[EXECUTOR] {action.action_type}: navigating to {prospect.profile_url}")
                await self._host.navigate(prospect.profile_url)
                return ActionResult.context_switch(NAVIGATING_MESSAGE)
            if is_deep_logging():
                deep_log(f"[DEEP][EXECUTOR] {action.action_type}: already on profile {current}")
            return await self.perform(action)
        except ElementNotFoundError as exc:
            tprint(f"[EXECUTOR][WARN] {action.action_type}: {exc}")
            return ActionResult.failed(str(exc), retry=True)
        except TransientNetworkError as exc:
            tprint(f"[EXECUTOR][WARN] {action.action_type}: {exc}")
            return ActionResult.failed(str(exc), retry=True)
        except RunnerError as exc:
            tprint(f"[EXECUTOR][ERROR] {action.action_type}: {exc.code} {exc}")
            details = {"code": exc.code}
            if exc.screenshot_path:
                details["screenshot_path"] = exc.screenshot_path
            return ActionResult.failed(str(exc), **details)
        except Exception as exc:
            tprint(f"[EXECUTOR][ERROR] {action.action_type} failed: {exc}")
            return ActionResult.failed(str(exc) or exc.__class__.__name__)

    async def perform(self, action: ScheduledAction) -> ActionResult:
        raise NotImplementedError
