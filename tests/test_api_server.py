"""Tests for the control API routes."""

import threading

import pytest
from fastapi.testclient import TestClient

from api import server
from outreach_runner.errors import AuthExpiredError, RunnerError
from outreach_runner.inbox_sync import SyncReport
from outreach_runner.notifications import NotificationSink
from outreach_runner.platform_api import SentMessage


class StubController:
    def __init__(self):
        self.notifier = NotificationSink()
        self.calls = []
        self.sync_error = None
        self.threads = {}

    async def boot(self):
        self.calls.append("boot")
        self.threads["boot"] = threading.get_ident()
        return False

    async def close(self):
        self.calls.append("close")

    async def start(self):
        self.calls.append("start")
        return True

    async def resume(self):
        self.calls.append("resume")
        return False

    def pause(self):
        self.calls.append("pause")
        self.threads["pause"] = threading.get_ident()

    def stop(self, reason="User stopped"):
        self.calls.append(("stop", reason))
        self.threads["stop"] = threading.get_ident()

    def status(self):
        self.threads["status"] = threading.get_ident()
        return {"phase": "polling", "is_running": True}

    async def sync_inbox(self, count=50, include_messages=False):
        if self.sync_error:
            raise self.sync_error
        return SyncReport(conversations=count, message="ok")

    async def sync_conversation(self, backend_conversation_id, conversation_id, count=50):
        if self.sync_error:
            raise self.sync_error
        self.calls.append(("sync_conversation", backend_conversation_id, conversation_id, count))
        return SyncReport(messages=3, message="Synced 3 messages")

    async def send_message(self, conversation_id, content):
        self.calls.append(("send_message", conversation_id, content))
        return SentMessage(conversation_id=conversation_id, message_urn="urn:m1")

    async def mark_as_read(self, conversation_id):
        self.calls.append(("mark_as_read", conversation_id))


@pytest.fixture
def stub(monkeypatch):
    controller = StubController()
    monkeypatch.setattr(server, "controller", controller)
    return controller


@pytest.fixture
def client(stub):
    with TestClient(server.app) as test_client:
        yield test_client


class TestQueueRoutes:
    def test_start(self, client, stub):
        response = client.post("/queue/start")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["phase"] == "polling"
        assert "start" in stub.calls

    def test_resume_when_not_paused(self, client):
        assert client.post("/queue/resume").json()["status"] == "not_paused"

    def test_pause_and_stop(self, client, stub):
        client.post("/queue/pause")
        client.post("/queue/stop", json={"reason": "Lunch break"})
        client.post("/queue/stop")

        assert "pause" in stub.calls
        assert ("stop", "Lunch break") in stub.calls
        assert ("stop", "User stopped") in stub.calls

    def test_events_since(self, client, stub):
        stub.notifier.status("running", "Queue started")
        stub.notifier.status("waiting", "Waiting 30s before next action...")

        items = client.get("/queue/events", params={"since": 1}).json()["items"]

        assert [e["status"] for e in items] == ["waiting"]

    def test_lifespan_boots_and_closes(self, stub):
        with TestClient(server.app) as test_client:
            test_client.get("/queue/status")
        assert stub.calls[0] == "boot"
        assert stub.calls[-1] == "close"

    def test_control_routes_run_on_the_event_loop(self, client, stub):
        client.post("/queue/pause")
        client.post("/queue/stop")
        client.get("/queue/status")

        loop_thread = stub.threads["boot"]
        assert stub.threads["pause"] == loop_thread
        assert stub.threads["stop"] == loop_thread
        assert stub.threads["status"] == loop_thread


class TestInboxRoute:
    def test_sync(self, client):
        body = client.post("/inbox/sync", json={"count": 5}).json()
        assert body["conversations"] == 5
        assert body["success"] is True

    def test_auth_failure_maps_to_401(self, client, stub):
        stub.sync_error = AuthExpiredError()
        assert client.post("/inbox/sync", json={}).status_code == 401

    def test_platform_failure_maps_to_502(self, client, stub):
        stub.sync_error = RunnerError("PLATFORM_HTTP_400", "bad variables")
        assert client.post("/inbox/sync", json={}).status_code == 502

    def test_conversation_message_sync(self, client, stub):
        response = client.post("/inbox/12/sync-messages", json={"conversation_id": "2-abc", "count": 5})

        assert response.status_code == 200
        assert response.json()["messages"] == 3
        assert ("sync_conversation", "12", "2-abc", 5) in stub.calls

    def test_conversation_message_sync_requires_platform_id(self, client):
        assert client.post("/inbox/12/sync-messages", json={}).status_code == 422

    def test_send_message(self, client, stub):
        response = client.post("/inbox/conversations/2-abc/messages", json={"content": "Hello"})

        assert response.json() == {
            "success": True,
            "conversation_id": "2-abc",
            "message_id": "urn:m1",
        }
        assert ("send_message", "2-abc", "Hello") in stub.calls

    def test_empty_message_is_rejected(self, client):
        response = client.post("/inbox/conversations/2-abc/messages", json={"content": ""})
        assert response.status_code == 422

    def test_mark_read(self, client, stub):
        response = client.post("/inbox/conversations/2-abc/read")

        assert response.json()["success"] is True
        assert ("mark_as_read", "2-abc") in stub.calls
