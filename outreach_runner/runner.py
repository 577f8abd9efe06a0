"""Resumable action-queue runner.

The runner pulls one action at a time from the backend queue, hands it to an
executor and reports the outcome. Every phase change is persisted, so the run
survives the destruction of its execution context: when an executor needs the
host on another page it navigates and returns a context-switch result, the
runner stops without reporting, and a fresh runner built on the same store
picks the action back up through ``resume_after_teardown``.

Stop and pause are cooperative. They take effect at loop boundaries and never
interrupt an action inside its executor.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

from outreach_runner.actions import ActionResult, ActionStatus, ScheduledAction
from outreach_runner.errors import AuthExpiredError, RunnerError, TransientNetworkError
from outreach_runner.notifications import NotificationSink
from outreach_runner.rate_limiter import RateLimiter
from outreach_runner.state import (
    STATE_KEY,
    RunnerPhase,
    RunnerState,
    RunnerStats,
    load_state,
    utc_now_iso,
)
from utils.log_utils import tprint
from utils.settings_store import deep_log, is_deep_logging, resolve_settings

COMPLETED_REASON = "completed"
DAILY_LIMIT_REASON = "daily limit reached"
AUTH_EXPIRED_REASON = "Authentication expired"
VERIFY_FAILED_REASON = "Account verification failed"
USER_STOP_REASON = "User stopped"

VERIFY_OK = "ok"
VERIFY_SWITCH = "switch"
VERIFY_FAILED = "failed"


class QueueRunner:
    def __init__(
        self,
        store,
        queue,
        executors,
        *,
        identity=None,
        rate_limiter: RateLimiter | None = None,
        notifier: NotificationSink | None = None,
        settings: dict | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._executors = executors
        self._identity = identity
        self._settings = resolve_settings(settings)
        self._limiter = rate_limiter or RateLimiter.from_settings(self._settings)
        self._notifier = notifier or NotificationSink()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self.state = load_state(store) or RunnerState()
        self._running = False
        self._paused = False
        self._stop_requested = False
        self._empty_polls = 0

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """True while this instance is inside a run."""
        return self._running

    async def start(self) -> bool:
        """Begin a new logical session. No-op if this runner is already running."""
        if self._running:
            tprint("[RUNNER] start() ignored, already running")
            return False
        persisted = load_state(self._store)
        if persisted is not None and persisted.is_running:
            tprint("[RUNNER] Persisted run found, resuming it instead of starting over")
            return await self.resume_after_teardown()
        if persisted is not None and persisted.phase == RunnerPhase.PAUSED:
            return await self.resume()

        self._begin_run()
        self.state = RunnerState(
            phase=RunnerPhase.VERIFYING, stats=RunnerStats(started_at=utc_now_iso())
        )
        self._persist()
        self._notifier.status("running", "Queue started")
        try:
            outcome = await self._verify_account()
            if outcome == VERIFY_OK:
                await self._poll_loop()
            elif outcome == VERIFY_FAILED:
                self.stop(VERIFY_FAILED_REASON)
        except AuthExpiredError:
            self._handle_auth_expired()
        finally:
            self._running = False
        return True

    async def resume_after_teardown(self) -> bool:
        """Continue a run that a previous execution context left behind.

        An interrupted action is executed and reported once, then polling
        resumes. Returns False when there is nothing to resume or this runner
        is already inside a run, so duplicate calls never re-report.
        """
        if self._running:
            return False
        persisted = load_state(self._store)
        if persisted is None or not persisted.is_running:
            return False
        self._begin_run()
        self.state = persisted
        tprint(
            f"[RUNNER] Resuming after teardown (phase={persisted.phase.value}, "
            f"action={persisted.current_action.id if persisted.current_action else None})"
        )
        try:
            await self._continue_run()
        finally:
            self._running = False
        return True

    async def resume(self) -> bool:
        """Leave PAUSED and continue where the run stopped."""
        if self._running:
            if self._paused:
                self._paused = False
                self.state.phase = RunnerPhase.POLLING
                self._persist()
                self._notifier.status("running", "Queue resumed")
                return True
            return False
        persisted = load_state(self._store)
        if persisted is None or persisted.phase != RunnerPhase.PAUSED:
            return False
        self._begin_run()
        self.state = persisted
        self.state.phase = RunnerPhase.EXECUTING if persisted.current_action else RunnerPhase.POLLING
        self._persist()
        self._notifier.status("running", "Queue resumed")
        try:
            await self._continue_run()
        finally:
            self._running = False
        return True

    def pause(self) -> None:
        if self.state.phase == RunnerPhase.STOPPED or not (self._running or self.state.is_running):
            return
        self._paused = True
        self.state.phase = RunnerPhase.PAUSED
        self._persist()
        self._notifier.status("paused", "Queue paused")

    def stop(self, reason: str = USER_STOP_REASON) -> None:
        self._stop_requested = True
        self._paused = False
        self.state.phase = RunnerPhase.STOPPED
        self.state.stop_reason = reason
        self.state.current_action = None
        self.state.awaiting_context_switch = False
        self.state.verified = False
        self._store.remove(STATE_KEY)
        self._notifier.status("stopped", reason)

    def status(self) -> dict[str, Any]:
        action = self.state.current_action
        return {
            "phase": self.state.phase.value,
            "is_running": self.state.is_running,
            "is_paused": self.state.phase == RunnerPhase.PAUSED,
            "loop_active": self._running,
            "verified": self.state.verified,
            "current_action": action.to_dict() if action else None,
            "stats": {
                "completed": self.state.stats.completed,
                "failed": self.state.stats.failed,
                "started_at": self.state.stats.started_at,
            },
            "stop_reason": self.state.stop_reason,
            "rate_limit": self._limiter.status(),
        }

    # ------------------------------------------------------------------
    # Run internals
    # ------------------------------------------------------------------

    def _begin_run(self) -> None:
        self._running = True
        self._paused = False
        self._stop_requested = False
        self._empty_polls = 0

    def _halted(self) -> bool:
        return self._stop_requested or self._paused

    def _persist(self) -> None:
        # A stopped run owns nothing in the store.
        if self._stop_requested or self.state.phase == RunnerPhase.STOPPED:
            return
        self._store.set(STATE_KEY, self.state.to_dict())

    def _set_phase(self, phase: RunnerPhase) -> None:
        if self._halted():
            return
        self.state.phase = phase
        self._persist()
        if is_deep_logging():
            deep_log(f"[DEEP][RUNNER] phase -> {phase.value}")

    def _handle_auth_expired(self) -> None:
        self._notifier.error("Authentication expired. Please log in again.")
        self.stop(AUTH_EXPIRED_REASON)

    async def _continue_run(self) -> None:
        self.state.awaiting_context_switch = False
        try:
            if self.state.phase == RunnerPhase.VERIFYING and not self.state.verified:
                outcome = await self._verify_account()
                if outcome == VERIFY_SWITCH:
                    return
                if outcome == VERIFY_FAILED:
                    self.stop(VERIFY_FAILED_REASON)
                    return
            elif self.state.current_action is not None:
                action = self.state.current_action
                self._notifier.status(
                    "executing",
                    f"Resuming: {action.action_type} for {action.target.full_name}",
                    action_id=action.id,
                )
                if await self._run_current_action():
                    return
                await self._sleep(float(self._settings.get("resume_settle_secs", 2)))
            await self._poll_loop()
        except AuthExpiredError:
            self._handle_auth_expired()

    async def _verify_account(self) -> str:
        self._set_phase(RunnerPhase.VERIFYING)
        self._notifier.status("verifying", "Verifying LinkedIn account...")
        if self._identity is None:
            tprint("[RUNNER][WARN] No identity probe configured, skipping account check")
            self.state.verified = True
            self._persist()
            return VERIFY_OK
        try:
            await self._identity.sleep(2000)
            profile_url = await self._identity.detect_profile_url()
            if not profile_url:
                if not await self._identity.is_on_feed():
                    self._notifier.status("verifying", "Navigating to feed to detect profile...")
                    self.state.awaiting_context_switch = True
                    self._persist()
                    await self._identity.go_to_feed()
                    return VERIFY_SWITCH
                await self._identity.sleep(3000)
                profile_url = await self._identity.detect_profile_url()
            if not profile_url:
                self._notifier.status(
                    "warning", "Could not verify profile URL, proceeding with caution..."
                )
                self.state.verified = True
                self._persist()
                return VERIFY_OK
            result = await self._queue.verify_account(profile_url)
        except AuthExpiredError:
            raise
        except RunnerError as exc:
            self._notifier.error(f"Verification error: {exc}")
            return VERIFY_FAILED

        if result.success and result.verified:
            self.state.verified = True
            self._persist()
            self._notifier.status(
                "verified", f"Account verified: {result.account_name or profile_url}"
            )
            return VERIFY_OK
        self._notifier.error(result.message or "LinkedIn account verification failed")
        return VERIFY_FAILED

    async def _poll_loop(self) -> None:
        while not self._halted():
            try:
                if not await self._poll_once():
                    return
            except AuthExpiredError:
                raise
            except TransientNetworkError as exc:
                self._notifier.error(f"Failed to get next action: {exc}")
                await self._cooldown()
            except Exception as exc:
                self._notifier.error(f"Error: {exc}")
                await self._cooldown()
        if self._paused:
            tprint("[RUNNER] Loop exited on pause")

    async def _poll_once(self) -> bool:
        """One fetch-execute-report cycle. Returns False when the loop should end."""
        self._set_phase(RunnerPhase.POLLING)
        response = await self._queue.next_action()
        if self._halted() and not response.has_action:
            return False

        if response.remaining_today is not None and response.remaining_today <= 0:
            self._notifier.status("limit_reached", "Daily limit reached. Will resume tomorrow.")
            self.stop(DAILY_LIMIT_REASON)
            return False

        if not response.has_action:
            self._empty_polls += 1
            max_empty = int(self._settings.get("max_empty_polls", 3))
            if self._empty_polls >= max_empty:
                self._notifier.status("completed", "All actions completed! Campaign finished.")
                self.stop(COMPLETED_REASON)
                return False
            interval = float(self._settings.get("empty_poll_interval_secs", 30))
            self._notifier.status(
                "waiting",
                f"No pending actions. Checking again in {interval:g}s... "
                f"({self._empty_polls}/{max_empty})",
            )
            self._set_phase(RunnerPhase.WAITING)
            await self._sleep(interval)
            return True

        self._empty_polls = 0
        action = response.action
        action.status = ActionStatus.EXECUTING
        self.state.current_action = action
        self.state.context_switches = 0
        # The backend marks a handed-out action in progress, so it runs even if
        # a pause or stop arrived during the fetch.
        self._persist()
        self._set_phase(RunnerPhase.EXECUTING)
        self._notifier.status(
            "executing",
            f"Executing: {action.action_type} for {action.target.full_name}",
            action_id=action.id,
        )
        if await self._run_current_action() or self._halted():
            return False
        await self._pace()
        return True

    async def _run_current_action(self) -> bool:
        """Execute and report ``current_action``. Returns True on a context switch."""
        action = self.state.current_action
        max_switches = int(self._settings.get("max_context_switches", 5))
        if self.state.context_switches >= max_switches:
            result = ActionResult.failed(
                f"Could not reach the target page after {self.state.context_switches} navigations",
                retry=True,
            )
        else:
            await self._limiter.acquire()
            result = await self._execute(action)

        if result.requires_context_switch and self._stop_requested:
            result = ActionResult.failed(
                "Queue stopped before the action reached its page", retry=True
            )

        if result.requires_context_switch:
            self.state.awaiting_context_switch = True
            self.state.context_switches += 1
            self._persist()
            tprint(f"[RUNNER] Action {action.id} needs a new page: {result.message}")
            return True

        await self._report(action, result)
        self._record(result)
        return False

    async def _execute(self, action: ScheduledAction) -> ActionResult:
        try:
            return await self._executors.execute(action)
        except Exception as exc:
            tprint(f"[RUNNER][ERROR] Executor raised for action {action.id}: {exc}")
            return ActionResult.failed(str(exc) or exc.__class__.__name__)

    async def _report(self, action: ScheduledAction, result: ActionResult) -> bool:
        attempts = max(1, int(self._settings.get("report_attempts", 3)))
        for attempt in range(1, attempts + 1):
            try:
                await self._queue.complete_action(action.id, result)
            except AuthExpiredError:
                raise
            except TransientNetworkError as exc:
                if attempt < attempts:
                    tprint(f"[RUNNER][WARN] Report attempt {attempt}/{attempts} failed: {exc}")
                    await self._sleep(float(self._settings.get("report_retry_delay_secs", 5)))
                    continue
                self._notifier.error(f"Failed to report result: {exc}", action_id=action.id)
                return False
            except RunnerError as exc:
                self._notifier.error(f"Failed to report result: {exc}", action_id=action.id)
                return False
            self._notifier.status(
                "action_completed" if result.success else "action_failed",
                result.message,
                action_id=action.id,
            )
            return True
        return False

    def _record(self, result: ActionResult) -> None:
        if result.success:
            self.state.stats.completed += 1
        else:
            self.state.stats.failed += 1
        self.state.current_action = None
        self.state.awaiting_context_switch = False
        self.state.context_switches = 0
        self._persist()

    async def _pace(self) -> None:
        low = float(self._settings.get("action_delay_min_secs", 25))
        high = float(self._settings.get("action_delay_max_secs", 45))
        delay = self._rng.uniform(low, high)
        self._set_phase(RunnerPhase.WAITING)
        self._notifier.status("waiting", f"Waiting {round(delay)}s before next action...")
        await self._sleep(delay)

    async def _cooldown(self) -> None:
        self._set_phase(RunnerPhase.WAITING)
        await self._sleep(float(self._settings.get("error_cooldown_secs", 30)))
