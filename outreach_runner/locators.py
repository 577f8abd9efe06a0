"""Ordered locator strategies with bounded retries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from outreach_runner.errors import ElementNotFoundError
from utils.log_utils import tprint
from utils.settings_store import deep_log, get_settings, is_deep_logging

if TYPE_CHECKING:
    from outreach_runner.host import AutomationHost


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding an element.

    ``selector`` is a CSS selector. ``text`` narrows matches to elements whose
    stripped text equals it. ``page_wide`` strategies ignore the caller's scope
    (dropdowns and modals render outside the profile card).
    """

    name: str
    selector: str
    text: str | None = None
    visible_only: bool = False
    page_wide: bool = False

    @classmethod
    def from_config(cls, name: str, index: int, raw: Any) -> "LocatorStrategy":
        if isinstance(raw, str):
            return cls(name=f"{name}.override{index}", selector=raw)
        data = dict(raw)
        data.setdefault("name", f"{name}.override{index}")
        return cls(**data)


@dataclass(frozen=True)
class LocatorSpec:
    description: str
    strategies: tuple[LocatorStrategy, ...]


@dataclass
class LocateResult:
    status: str  # "ok" | "not_found"
    element: Any
    strategy_used: str | None
    attempts_made: list[str] = field(default_factory=list)
    elapsed_ms: int = 0
    error_message: str | None = None

    @property
    def found(self) -> bool:
        return self.element is not None


class LocatorChain:
    """Try strategies left to right; retry the whole list a bounded number of times."""

    def __init__(
        self,
        host: "AutomationHost",
        name: str,
        spec: LocatorSpec,
        retries: int = 3,
        delay_ms: int = 1500,
    ) -> None:
        self._host = host
        self.name = name
        self.spec = spec
        self.retries = max(1, retries)
        self.delay_ms = delay_ms

    async def locate(self, scope: Any = None) -> LocateResult:
        start = time.monotonic()
        attempts: list[str] = []
        for attempt in range(1, self.retries + 1):
            for strategy in self.spec.strategies:
                attempts.append(strategy.name)
                element = await self._host.locate((strategy,), scope=scope)
                if element is not None:
                    if is_deep_logging():
                        deep_log(
                            f"[DEEP][LOCATOR] {self.name} matched via {strategy.name} "
                            f"(attempt {attempt}/{self.retries})"
                        )
                    return LocateResult(
                        status="ok",
                        element=element,
                        strategy_used=strategy.name,
                        attempts_made=attempts,
                        elapsed_ms=int((time.monotonic() - start) * 1000),
                    )
            if attempt < self.retries:
                if is_deep_logging():
                    deep_log(
                        f"[DEEP][LOCATOR] {self.name} not found, retry {attempt}/{self.retries}"
                    )
                await self._host.sleep(self.delay_ms)
        tprint(f"[LOCATOR] {self.spec.description} not found after {self.retries} attempts")
        return LocateResult(
            status="not_found",
            element=None,
            strategy_used=None,
            attempts_made=attempts,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            error_message=f"Could not find {self.spec.description}",
        )

    async def require(self, scope: Any = None) -> Any:
        result = await self.locate(scope)
        if result.element is None:
            raise ElementNotFoundError(self.spec.description, self.retries)
        return result.element


class LocatorBook:
    """Named locator specs, defaults overlaid with ``locator_overrides`` from settings."""

    def __init__(
        self,
        host: "AutomationHost",
        specs: dict[str, LocatorSpec] | None = None,
        settings: dict | None = None,
    ) -> None:
        from outreach_runner.web_constants import DEFAULT_LOCATORS

        self._host = host
        self._settings = settings or get_settings()
        self._specs = dict(specs or DEFAULT_LOCATORS)
        overrides = self._settings.get("locator_overrides") or {}
        for name, raw_list in overrides.items():
            self._specs[name] = self._override(name, raw_list)

    def _override(self, name: str, raw_list: Iterable[Any]) -> LocatorSpec:
        base = self._specs.get(name)
        description = base.description if base else name.replace("_", " ")
        strategies = tuple(
            LocatorStrategy.from_config(name, i, raw) for i, raw in enumerate(raw_list)
        )
        tprint(f"[LOCATOR] Using {len(strategies)} override strategies for '{name}'")
        return LocatorSpec(description, strategies)

    def spec(self, name: str) -> LocatorSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"Unknown locator '{name}'") from None

    def chain(
        self, name: str, retries: int | None = None, delay_ms: int | None = None
    ) -> LocatorChain:
        return LocatorChain(
            self._host,
            name,
            self.spec(name),
            retries=retries if retries is not None else int(self._settings.get("locator_retries", 3)),
            delay_ms=delay_ms
            if delay_ms is not None
            else int(self._settings.get("locator_retry_delay_ms", 1500)),
        )
