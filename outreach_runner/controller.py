"""Supervises runners across execution-context teardowns."""

from __future__ import annotations

import asyncio
import random
from contextlib import asynccontextmanager
from collections.abc import Awaitable, Callable
from typing import Any

from outreach_runner.executors import build_default_registry
from outreach_runner.identity import AccountIdentity
from outreach_runner.inbox_sync import InboxSync, SyncReport
from outreach_runner.locators import LocatorBook
from outreach_runner.notifications import NotificationSink
from outreach_runner.platform_api import AuthContext, GraphApiClient, SentMessage
from outreach_runner.queue_client import RemoteQueueClient
from outreach_runner.rate_limiter import RateLimiter
from outreach_runner.runner import USER_STOP_REASON, QueueRunner
from outreach_runner.state import load_state
from utils.log_utils import tprint
from utils.settings_store import resolve_settings
from utils.state_store import JsonFileStateStore

RunnerEntry = Callable[[QueueRunner], Awaitable[Any]]


class RunnerController:
    """Owns the long-lived pieces and builds a fresh QueueRunner per context.

    A runner that detaches for a navigation leaves ``awaiting_context_switch``
    set in the store. The controller waits for the new page, builds a new
    runner on the same store and resumes it, until the run stops, pauses or
    finishes.
    """

    def __init__(
        self,
        *,
        store,
        queue: RemoteQueueClient,
        host,
        notifier: NotificationSink | None = None,
        rate_limiter: RateLimiter | None = None,
        settings: dict | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: random.Random | None = None,
        locators: LocatorBook | None = None,
    ) -> None:
        self._settings = resolve_settings(settings)
        self._store = store
        self._queue = queue
        self._host = host
        self.notifier = notifier or NotificationSink()
        self._limiter = rate_limiter or RateLimiter.from_settings(self._settings)
        self._sleep = sleep
        self._rng = rng
        self._locators = locators or LocatorBook(host, settings=self._settings)
        self._identity = AccountIdentity(host, self._locators, self._settings)
        self._executors = build_default_registry(
            host, self._locators, rng=rng, email_sink=queue.save_prospect_email
        )
        self.runner = self._build_runner()
        self._task: asyncio.Task | None = None

    def _build_runner(self) -> QueueRunner:
        return QueueRunner(
            self._store,
            self._queue,
            self._executors,
            identity=self._identity,
            rate_limiter=self._limiter,
            notifier=self.notifier,
            settings=self._settings,
            sleep=self._sleep,
            rng=self._rng,
        )

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def _detached(self) -> bool:
        state = load_state(self._store)
        return (
            state is not None
            and state.is_running
            and state.awaiting_context_switch
            and not self.runner.is_active
        )

    async def _drive(self, entry: RunnerEntry) -> None:
        try:
            await entry(self.runner)
            while self._detached():
                wait_until_ready = getattr(self._host, "wait_until_ready", None)
                if wait_until_ready is not None:
                    await wait_until_ready()
                self.runner = self._build_runner()
                tprint("[CONTROLLER] Execution context replaced, resuming run")
                await self.runner.resume_after_teardown()
        except Exception as exc:
            self.notifier.error(f"Runner crashed: {exc}")

    def _launch(self, entry: RunnerEntry) -> bool:
        if self.busy:
            tprint("[CONTROLLER] Run already in progress")
            return False
        self._task = asyncio.create_task(self._drive(entry))
        return True

    async def start(self) -> bool:
        return self._launch(lambda runner: runner.start())

    async def boot(self) -> bool:
        """Pick up a run persisted by a previous process, if any."""
        state = load_state(self._store)
        if state is None or not state.is_running:
            return False
        tprint(f"[CONTROLLER] Resuming persisted run (phase={state.phase.value})")
        return self._launch(lambda runner: runner.resume_after_teardown())

    async def resume(self) -> bool:
        if self.busy:
            return await self.runner.resume()
        return self._launch(lambda runner: runner.resume())

    def pause(self) -> None:
        self.runner.pause()

    def stop(self, reason: str = USER_STOP_REASON) -> None:
        self.runner.stop(reason)

    def status(self) -> dict[str, Any]:
        return {**self.runner.status(), "task_active": self.busy}

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    @asynccontextmanager
    async def _graph(self):
        cookies = await self._host.auth_cookies()
        graph = GraphApiClient(
            AuthContext.from_cookies(cookies), self._limiter, settings=self._settings
        )
        try:
            yield graph
        finally:
            await graph.close()

    async def sync_inbox(self, count: int = 50, include_messages: bool = False) -> SyncReport:
        async with self._graph() as graph:
            return await InboxSync(graph, self._queue).sync(count, include_messages)

    async def sync_conversation(
        self, backend_conversation_id: Any, conversation_id: str, count: int = 50
    ) -> SyncReport:
        async with self._graph() as graph:
            return await InboxSync(graph, self._queue).sync_conversation(
                backend_conversation_id, conversation_id, count
            )

    async def send_message(self, conversation_id: str, content: str) -> SentMessage:
        async with self._graph() as graph:
            return await graph.send_message(conversation_id, content)

    async def mark_as_read(self, conversation_id: str) -> None:
        async with self._graph() as graph:
            await graph.mark_as_read(conversation_id)

    async def close(self) -> None:
        # The persisted state is left in place so the next boot() resumes it.
        if self.busy:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self._queue.close()
        shutdown = getattr(self._host, "shutdown", None)
        if shutdown is not None:
            await shutdown()


def build_controller(settings: dict | None = None) -> RunnerController:
    from outreach_runner.playwright_host import PlaywrightHost

    settings = resolve_settings(settings)
    return RunnerController(
        store=JsonFileStateStore(settings["state_dir"]),
        queue=RemoteQueueClient(settings=settings),
        host=PlaywrightHost(settings),
        settings=settings,
    )
