"""Tests for QueueRunner (polling, reporting, teardown and resume)."""

import asyncio
import random

from fakes import (
    EMPTY,
    FakeExecutors,
    FakeIdentity,
    FakeQueue,
    InterruptingQueue,
    SleepRecorder,
    action_response,
    make_action,
)
from outreach_runner.actions import ActionResult
from outreach_runner.errors import AuthExpiredError, RunnerError, TransientNetworkError
from outreach_runner.executors.router import ExecutorRegistry
from outreach_runner.notifications import NotificationSink
from outreach_runner.queue_client import NextActionResponse, VerificationResult
from outreach_runner.runner import QueueRunner
from outreach_runner.state import STATE_KEY, RunnerPhase, RunnerState, load_state
from utils.state_store import InMemoryStateStore


def _runner(store, queue, executors, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    kwargs.setdefault("rng", random.Random(7))
    kwargs.setdefault("settings", {"log_level": "INFO"})
    return QueueRunner(store, queue, executors, **kwargs)


def _statuses(notifier):
    return [e.get("status") for e in notifier.recent() if e["topic"] == "queue.status"]


class TestPolling:
    """Empty queues, daily limits and pacing."""

    def test_three_empty_polls_complete_the_run(self):
        store = InMemoryStateStore()
        queue = FakeQueue()
        sleep = SleepRecorder()
        notifier = NotificationSink()
        runner = _runner(store, queue, FakeExecutors(), sleep=sleep, notifier=notifier)

        asyncio.run(runner.start())

        assert queue.polls == 3
        assert sleep.calls == [30.0, 30.0]
        assert runner.state.phase == RunnerPhase.STOPPED
        assert runner.state.stop_reason == "completed"
        assert store.get(STATE_KEY) is None
        assert "completed" in _statuses(notifier)

    def test_daily_limit_stops_before_executing(self):
        store = InMemoryStateStore()
        queue = FakeQueue([action_response(make_action(), remaining_today=0)])
        executors = FakeExecutors()
        runner = _runner(store, queue, executors)

        asyncio.run(runner.start())

        assert executors.executed == []
        assert queue.completed == []
        assert runner.state.stop_reason == "daily limit reached"
        assert store.get(STATE_KEY) is None

    def test_daily_limit_wins_over_empty_poll(self):
        queue = FakeQueue([NextActionResponse(has_action=False, remaining_today=0)])
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors())

        asyncio.run(runner.start())

        assert queue.polls == 1
        assert runner.state.stop_reason == "daily limit reached"

    def test_action_then_pacing_delay(self):
        store = InMemoryStateStore()
        queue = FakeQueue([action_response(make_action(action_id=5))])
        sleep = SleepRecorder()
        runner = _runner(store, queue, FakeExecutors(), sleep=sleep)

        asyncio.run(runner.start())

        assert [action_id for action_id, _ in queue.completed] == [5]
        assert runner.state.stats.completed == 1
        assert runner.state.stats.failed == 0
        assert 25 <= sleep.calls[0] <= 45
        assert runner.state.stop_reason == "completed"

    def test_empty_poll_counter_resets_after_an_action(self):
        queue = FakeQueue([EMPTY, EMPTY, action_response(make_action())])
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors())

        asyncio.run(runner.start())

        # 2 empty, 1 action, then 3 more empty polls before completing.
        assert queue.polls == 6
        assert len(queue.completed) == 1

    def test_fetch_error_cools_down_and_continues(self):
        queue = FakeQueue([TransientNetworkError("boom"), action_response(make_action())])
        sleep = SleepRecorder()
        notifier = NotificationSink()
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), sleep=sleep, notifier=notifier)

        asyncio.run(runner.start())

        assert sleep.calls[0] == 30.0
        assert len(queue.completed) == 1
        errors = [e for e in notifier.recent() if e["topic"] == "queue.error"]
        assert errors and "boom" in errors[0]["message"]

    def test_unexpected_error_cools_down_and_continues(self):
        queue = FakeQueue([ValueError("weird"), action_response(make_action(action_id=6))])
        sleep = SleepRecorder()
        notifier = NotificationSink()
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), sleep=sleep, notifier=notifier)

        asyncio.run(runner.start())

        assert sleep.calls[0] == 30.0
        assert [action_id for action_id, _ in queue.completed] == [6]
        errors = [e for e in notifier.recent() if e["topic"] == "queue.error"]
        assert errors and "weird" in errors[0]["message"]

    def test_auth_expired_stops_the_run(self):
        store = InMemoryStateStore()
        queue = FakeQueue([AuthExpiredError()])
        runner = _runner(store, queue, FakeExecutors())

        asyncio.run(runner.start())

        assert runner.state.stop_reason == "Authentication expired"
        assert store.get(STATE_KEY) is None


class TestReporting:
    """Outcome reporting and retry flags."""

    def test_unknown_action_type_is_reported_without_retry(self):
        queue = FakeQueue([action_response(make_action(action_type="teleport"))])
        runner = _runner(InMemoryStateStore(), queue, ExecutorRegistry())

        asyncio.run(runner.start())

        (_, result), = queue.completed
        assert result.success is False
        assert result.message == "Unknown action type: teleport"
        assert result.should_retry() is False
        assert runner.state.stats.failed == 1

    def test_missing_element_failure_is_retryable(self):
        failure = ActionResult.failed("Could not find Connect or More button")
        queue = FakeQueue([action_response(make_action())])
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors([failure]))

        asyncio.run(runner.start())

        (_, result), = queue.completed
        assert result.should_retry() is True

    def test_transient_report_failure_is_retried(self):
        queue = FakeQueue(
            [action_response(make_action())],
            complete_errors=[TransientNetworkError("a"), TransientNetworkError("b")],
        )
        sleep = SleepRecorder()
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), sleep=sleep)

        asyncio.run(runner.start())

        assert queue.complete_attempts == 3
        assert len(queue.completed) == 1
        assert sleep.calls[:2] == [5.0, 5.0]

    def test_rejected_report_is_not_retried(self):
        queue = FakeQueue(
            [action_response(make_action())],
            complete_errors=[RunnerError("QUEUE_HTTP_400", "Action is not in progress")],
        )
        notifier = NotificationSink()
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), notifier=notifier)

        asyncio.run(runner.start())

        assert queue.complete_attempts == 1
        assert runner.state.stats.completed == 1
        assert any("Failed to report" in e["message"] for e in notifier.recent() if e["topic"] == "queue.error")


class TestContextSwitch:
    """Detaching for navigation and resuming in a fresh runner."""

    def _detach(self, store):
        queue = FakeQueue([action_response(make_action(action_id=42))])
        executors = FakeExecutors([ActionResult.context_switch("Navigating to profile")])
        runner = _runner(store, queue, executors)
        asyncio.run(runner.start())
        return queue

    def test_context_switch_persists_without_reporting(self):
        store = InMemoryStateStore()
        queue = self._detach(store)

        state = load_state(store)
        assert queue.completed == []
        assert state.phase == RunnerPhase.EXECUTING
        assert state.awaiting_context_switch is True
        assert state.current_action.id == 42
        assert state.context_switches == 1

    def test_resume_reports_exactly_once(self):
        store = InMemoryStateStore()
        self._detach(store)

        queue = FakeQueue()
        executors = FakeExecutors()
        runner = _runner(store, queue, executors)

        assert asyncio.run(runner.resume_after_teardown()) is True
        assert asyncio.run(runner.resume_after_teardown()) is False

        assert [action_id for action_id, _ in queue.completed] == [42]
        assert len(executors.executed) == 1
        assert runner.state.stats.completed == 1

    def test_concurrent_resume_calls_report_once(self):
        store = InMemoryStateStore()
        self._detach(store)
        queue = FakeQueue()
        runner = _runner(store, queue, FakeExecutors())

        async def both():
            return await asyncio.gather(
                runner.resume_after_teardown(), runner.resume_after_teardown()
            )

        outcomes = asyncio.run(both())

        assert sorted(outcomes) == [False, True]
        assert len(queue.completed) == 1

    def test_resume_waits_before_polling(self):
        store = InMemoryStateStore()
        self._detach(store)
        sleep = SleepRecorder()
        runner = _runner(store, FakeQueue(), FakeExecutors(), sleep=sleep)

        asyncio.run(runner.resume_after_teardown())

        assert sleep.calls[0] == 2.0

    def test_resume_without_persisted_run_is_noop(self):
        runner = _runner(InMemoryStateStore(), FakeQueue(), FakeExecutors())

        assert asyncio.run(runner.resume_after_teardown()) is False

    def test_too_many_switches_fail_the_action(self):
        store = InMemoryStateStore()
        state = RunnerState(
            phase=RunnerPhase.EXECUTING,
            current_action=make_action(action_id=9),
            verified=True,
            context_switches=5,
        )
        store.set(STATE_KEY, state.to_dict())
        queue = FakeQueue()
        executors = FakeExecutors()
        runner = _runner(store, queue, executors)

        asyncio.run(runner.resume_after_teardown())

        assert executors.executed == []
        (action_id, result), = queue.completed
        assert action_id == 9
        assert result.success is False
        assert result.should_retry() is True


class TestControl:
    """start/pause/resume/stop semantics."""

    def test_start_is_noop_while_running(self):
        store = InMemoryStateStore()
        queue = FakeQueue([action_response(make_action())])
        calls = []

        async def hook(action):
            calls.append(await runner.start())
            return None

        runner = _runner(store, queue, FakeExecutors(hook=hook))
        asyncio.run(runner.start())

        assert calls == [False]
        assert len(queue.completed) == 1

    def test_stop_mid_action_clears_state(self):
        store = InMemoryStateStore()
        queue = FakeQueue([action_response(make_action()), action_response(make_action(2))])

        async def hook(action):
            runner.stop()
            return None

        executors = FakeExecutors(hook=hook)
        runner = _runner(store, queue, executors)
        asyncio.run(runner.start())

        assert len(executors.executed) == 1
        assert runner.state.stop_reason == "User stopped"
        assert store.get(STATE_KEY) is None

    def test_pause_then_resume(self):
        store = InMemoryStateStore()
        queue = FakeQueue([action_response(make_action(1)), action_response(make_action(2))])
        paused = []

        async def hook(action):
            if not paused:
                paused.append(action.id)
                runner.pause()
            return None

        runner = _runner(store, queue, FakeExecutors(hook=hook))
        asyncio.run(runner.start())

        assert load_state(store).phase == RunnerPhase.PAUSED
        assert [a for a, _ in queue.completed] == [1]

        assert asyncio.run(runner.resume()) is True
        assert [a for a, _ in queue.completed] == [1, 2]
        assert runner.state.stop_reason == "completed"

    def test_status_reports_stats_and_limiter(self):
        runner = _runner(InMemoryStateStore(), FakeQueue([action_response(make_action())]), FakeExecutors())
        asyncio.run(runner.start())

        status = runner.status()

        assert status["phase"] == "stopped"
        assert status["stats"]["completed"] == 1
        assert status["rate_limit"]["used"] == 1
        assert status["loop_active"] is False

    def test_pause_during_fetch_still_runs_the_fetched_action(self):
        store = InMemoryStateStore()
        queue = InterruptingQueue([action_response(make_action(action_id=77))])
        executors = FakeExecutors()
        runner = _runner(store, queue, executors)
        queue.interrupt = runner.pause

        asyncio.run(runner.start())

        assert [a.id for a in executors.executed] == [77]
        assert [a for a, _ in queue.completed] == [77]
        persisted = load_state(store)
        assert persisted.phase == RunnerPhase.PAUSED
        assert persisted.current_action is None

        assert asyncio.run(runner.resume()) is True
        assert [a for a, _ in queue.completed] == [77]
        assert runner.state.stop_reason == "completed"

    def test_pause_during_fetch_keeps_action_across_navigation(self):
        store = InMemoryStateStore()
        queue = InterruptingQueue([action_response(make_action(action_id=78))])
        executors = FakeExecutors([ActionResult.context_switch("Navigating to profile")])
        runner = _runner(store, queue, executors)
        queue.interrupt = runner.pause

        asyncio.run(runner.start())

        persisted = load_state(store)
        assert queue.completed == []
        assert persisted.phase == RunnerPhase.PAUSED
        assert persisted.current_action.id == 78

        resumed_queue = FakeQueue()
        fresh = _runner(store, resumed_queue, FakeExecutors())
        assert asyncio.run(fresh.resume()) is True
        assert [a for a, _ in resumed_queue.completed] == [78]

    def test_stop_during_fetch_still_reports_the_fetched_action(self):
        store = InMemoryStateStore()
        queue = InterruptingQueue([action_response(make_action(action_id=79))])
        executors = FakeExecutors()
        runner = _runner(store, queue, executors)
        queue.interrupt = runner.stop

        asyncio.run(runner.start())

        assert [a.id for a in executors.executed] == [79]
        assert [a for a, _ in queue.completed] == [79]
        assert queue.polls == 1
        assert runner.state.stop_reason == "User stopped"
        assert store.get(STATE_KEY) is None

    def test_stop_before_navigation_hands_the_action_back(self):
        store = InMemoryStateStore()
        queue = InterruptingQueue([action_response(make_action(action_id=80))])
        executors = FakeExecutors([ActionResult.context_switch("Navigating to profile")])
        runner = _runner(store, queue, executors)
        queue.interrupt = runner.stop

        asyncio.run(runner.start())

        (action_id, result), = queue.completed
        assert action_id == 80
        assert result.success is False
        assert result.should_retry() is True
        assert store.get(STATE_KEY) is None


class TestVerification:
    """Account identity checks at the start of a session."""

    def test_verified_account_proceeds(self):
        queue = FakeQueue()
        notifier = NotificationSink()
        identity = FakeIdentity(["https://www.linkedin.com/in/me/"])
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), identity=identity, notifier=notifier)

        asyncio.run(runner.start())

        assert queue.verified_urls == ["https://www.linkedin.com/in/me/"]
        assert queue.polls == 3
        assert any(e.get("message") == "Account verified: Ada Lovelace" for e in notifier.recent())

    def test_mismatched_account_stops(self):
        queue = FakeQueue()
        queue.verify_result = VerificationResult(
            success=False, verified=False, message="Wrong LinkedIn account"
        )
        identity = FakeIdentity(["https://www.linkedin.com/in/someone-else/"])
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), identity=identity)

        asyncio.run(runner.start())

        assert queue.polls == 0
        assert runner.state.stop_reason == "Account verification failed"

    def test_navigates_to_feed_then_verifies_after_resume(self):
        store = InMemoryStateStore()
        identity = FakeIdentity([None], on_feed=False)
        queue = FakeQueue()
        first = _runner(store, queue, FakeExecutors(), identity=identity)

        asyncio.run(first.start())

        state = load_state(store)
        assert identity.feed_visits == 1
        assert state.phase == RunnerPhase.VERIFYING
        assert state.awaiting_context_switch is True
        assert queue.polls == 0

        identity.urls = ["https://www.linkedin.com/in/me/"]
        second = _runner(store, queue, FakeExecutors(), identity=identity)
        asyncio.run(second.resume_after_teardown())

        assert queue.verified_urls == ["https://www.linkedin.com/in/me/"]
        assert queue.polls == 3

    def test_unknown_profile_on_feed_proceeds_with_warning(self):
        queue = FakeQueue()
        identity = FakeIdentity([None, None], on_feed=True)
        runner = _runner(InMemoryStateStore(), queue, FakeExecutors(), identity=identity)

        asyncio.run(runner.start())

        assert queue.verified_urls == []
        assert queue.polls == 3
