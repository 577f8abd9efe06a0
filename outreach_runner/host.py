"""Automation primitives the executors drive."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from outreach_runner.locators import LocatorStrategy


class AutomationHost(Protocol):
    """A browser-like surface positioned on one page at a time.

    ``navigate`` may end the current execution context; callers that need a
    new page return a context-switch result right after calling it.
    """

    async def current_url(self) -> str: ...

    async def navigate(self, url: str) -> None: ...

    async def locate(
        self, strategies: Sequence[LocatorStrategy], scope: Any = None
    ) -> Any | None: ...

    async def click(self, element: Any) -> None: ...

    async def set_text(self, element: Any, text: str) -> None: ...

    async def dispatch_change_signal(self, element: Any) -> None: ...

    async def press(self, element: Any | None, key: str) -> None: ...

    async def text_of(self, element: Any) -> str: ...

    async def attribute(self, element: Any, name: str) -> str | None: ...

    async def is_visible(self, element: Any) -> bool: ...

    async def scroll(self, pixels: int) -> None: ...

    async def sleep(self, ms: int) -> None: ...
