"""Tests for EventBus delivery and NotificationSink history."""

from outreach_runner.notifications import ERROR_TOPIC, STATUS_TOPIC, NotificationSink
from utils.event_bus import ANY_TOPIC, EventBus


class TestEventBus:
    def test_topic_and_wildcard_handlers(self):
        bus = EventBus()
        topic_events, all_events = [], []
        bus.subscribe("a", topic_events.append)
        bus.subscribe(ANY_TOPIC, lambda topic, payload: all_events.append((topic, payload)))

        bus.publish("a", {"x": 1})
        bus.publish("b", {"y": 2})

        assert topic_events == [{"x": 1}]
        assert all_events == [("a", {"x": 1}), ("b", {"y": 2})]

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("ui gone")

        bus.subscribe("a", broken)
        bus.subscribe("a", received.append)
        bus.publish("a", {"ok": True})

        assert received == [{"ok": True}]

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe("a", received.append)
        bus.unsubscribe("a", received.append)
        bus.publish("a", {})
        assert received == []


class TestNotificationSink:
    def test_events_are_sequenced_and_published(self):
        bus = EventBus()
        published = []
        bus.subscribe(STATUS_TOPIC, published.append)
        sink = NotificationSink(bus)

        sink.status("running", "Queue started")
        sink.error("Something broke", action_id=4)

        events = sink.recent()
        assert [e["seq"] for e in events] == [1, 2]
        assert events[1]["topic"] == ERROR_TOPIC
        assert events[1]["action_id"] == 4
        assert published[0]["status"] == "running"

    def test_recent_since_and_history_bound(self):
        sink = NotificationSink(history=3)
        for i in range(5):
            sink.status("waiting", f"tick {i}")

        assert [e["seq"] for e in sink.recent()] == [3, 4, 5]
        assert [e["seq"] for e in sink.recent(since=4)] == [5]
