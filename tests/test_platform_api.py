"""Tests for GraphApiClient throttling, auth handling and graph fetches."""

import asyncio

import pytest

from fakes import FakeResponse, FakeSession, SleepRecorder
from outreach_runner.errors import (
    AuthExpiredError,
    PlatformRequestError,
    RateLimitExceeded,
    RunnerError,
    TransientNetworkError,
)
from outreach_runner.platform_api import AuthContext, GraphApiClient
from outreach_runner.rate_limiter import RateLimiter

ME_PAYLOAD = {"miniProfile": {"entityUrn": "urn:li:fs_miniProfile:ME123"}}


def _client(*responses):
    session = FakeSession(list(responses))
    sleep = SleepRecorder()
    limiter = RateLimiter(10, 60_000)
    auth = AuthContext.from_cookies({"JSESSIONID": '"ajax:123"', "li_at": "secret"})
    client = GraphApiClient(
        auth,
        limiter,
        base_url="https://www.linkedin.com",
        settings={"platform_base_url": "https://www.linkedin.com"},
        session=session,
        sleep=sleep,
    )
    return client, session, sleep, limiter


class TestAuthContext:
    def test_csrf_token_strips_quotes(self):
        auth = AuthContext.from_cookies({"JSESSIONID": '"ajax:42"', "li_at": "x"})
        assert auth.csrf_token == "ajax:42"
        assert auth.logged_in is True

    def test_missing_session_cookie(self):
        with pytest.raises(AuthExpiredError):
            AuthContext.from_cookies({"li_at": "x"})


class TestRequest:
    def test_sends_csrf_and_cookie_headers(self):
        client, session, _, _ = _client(FakeResponse(200, {"ok": True}))

        payload = asyncio.run(client.request("/me"))

        assert payload == {"ok": True}
        request = session.requests[0]
        assert request["url"] == "https://www.linkedin.com/voyager/api/me"
        assert request["headers"]["csrf-token"] == "ajax:123"
        assert "li_at=secret" in request["headers"]["cookie"]

    def test_throttled_request_is_retried_once(self):
        client, session, sleep, limiter = _client(
            FakeResponse(429, headers={"Retry-After": "2"}),
            FakeResponse(200, {"ok": True}),
        )

        payload = asyncio.run(client.request("/me"))

        assert payload == {"ok": True}
        assert sleep.calls == [2.0]
        assert len(session.requests) == 2
        assert limiter.count == 2

    def test_second_throttle_raises(self):
        client, _, _, _ = _client(
            FakeResponse(429, headers={"Retry-After": "3"}),
            FakeResponse(429, headers={"Retry-After": "3"}),
        )

        with pytest.raises(RateLimitExceeded) as excinfo:
            asyncio.run(client.request("/me"))
        assert excinfo.value.retry_after == 3.0

    def test_missing_retry_after_uses_default(self):
        client, _, sleep, _ = _client(FakeResponse(429), FakeResponse(200, {}))

        asyncio.run(client.request("/me"))

        assert sleep.calls == [60.0]

    @pytest.mark.parametrize("status", [401, 403])
    def test_session_rejected(self, status):
        client, _, _, _ = _client(FakeResponse(status))
        with pytest.raises(AuthExpiredError):
            asyncio.run(client.request("/me"))

    def test_server_error_is_transient(self):
        client, _, _, _ = _client(FakeResponse(502))
        with pytest.raises(TransientNetworkError):
            asyncio.run(client.request("/me"))

    def test_client_error(self):
        client, _, _, _ = _client(FakeResponse(400, text="bad variables"))
        with pytest.raises(PlatformRequestError) as excinfo:
            asyncio.run(client.request("/me"))
        assert excinfo.value.status == 400
        assert "bad variables" in str(excinfo.value)


class TestGraphFetches:
    def test_self_urn_is_converted_and_cached(self):
        client, session, _, _ = _client(FakeResponse(200, ME_PAYLOAD))

        first = asyncio.run(client.fetch_self_urn())
        second = asyncio.run(client.fetch_self_urn())

        assert first == "urn:li:fsd_profile:ME123"
        assert second == first
        assert len(session.requests) == 1

    def test_fetch_conversations(self):
        conversation_urn = "urn:li:msg_conversation:(urn:li:fsd_profile:ME123,2-abc)"
        graph_payload = {
            "data": {"data": {"messengerConversationsByCategory": {"*elements": [conversation_urn]}}},
            "included": [
                {
                    "entityUrn": conversation_urn,
                    "*participants": ["urn:p:me", "urn:p:other"],
                    "unreadCount": 0,
                },
                {"entityUrn": "urn:p:me", "*profile": "urn:li:fsd_profile:ME123"},
                {"entityUrn": "urn:p:other", "*profile": "urn:li:fsd_profile:X9"},
                {"entityUrn": "urn:li:fsd_profile:ME123", "firstName": "Ada", "lastName": "L"},
                {
                    "entityUrn": "urn:li:fsd_profile:X9",
                    "firstName": "Grace",
                    "lastName": "Hopper",
                    "publicIdentifier": "grace-hopper",
                },
            ],
        }
        client, session, _, _ = _client(FakeResponse(200, ME_PAYLOAD), FakeResponse(200, graph_payload))

        (view,) = asyncio.run(client.fetch_conversations(10))

        assert view.id == "2-abc"
        assert view.participant_name == "Grace Hopper"
        assert view.participant_resolution == "self_urn"
        assert "queryId=" in session.requests[1]["url"]
        assert "count:10" in session.requests[1]["url"]


class TestMessaging:
    """Sending into a conversation and marking it read."""

    def test_send_message_uses_messenger_endpoint(self):
        sent_payload = {"value": {"entityUrn": "urn:li:msg_message:(urn:li:fsd_profile:ME123,m1)"}}
        client, session, _, limiter = _client(
            FakeResponse(200, ME_PAYLOAD), FakeResponse(200, sent_payload)
        )

        sent = asyncio.run(client.send_message("2-abc", "  Hello Grace  "))

        request = session.requests[1]
        assert request["method"] == "POST"
        assert request["url"].endswith("/voyagerMessagingDashMessengerMessages?action=createMessage")
        message = request["json"]["message"]
        assert message["body"]["text"] == "Hello Grace"
        assert message["conversationUrn"] == "urn:li:msg_conversation:(urn:li:fsd_profile:ME123,2-abc)"
        assert request["json"]["mailboxUrn"] == "urn:li:fsd_profile:ME123"
        assert sent.message_urn == sent_payload["value"]["entityUrn"]
        assert sent.to_dict()["success"] is True
        assert limiter.status()["used"] == 2

    def test_send_message_falls_back_to_thread_events(self):
        client, session, _, _ = _client(
            FakeResponse(200, ME_PAYLOAD),
            FakeResponse(400, text="bad body"),
            FakeResponse(201, {}),
        )

        sent = asyncio.run(client.send_message("2-abc", "Hello"))

        fallback = session.requests[2]
        assert fallback["url"].endswith(
            "/messaging/conversations/urn%3Ali%3AmessagingThread%3A2-abc/events"
        )
        create = fallback["json"]["eventCreate"]["value"]
        assert create["com.linkedin.voyager.messaging.create.MessageCreate"]["body"] == "Hello"
        assert sent.message_urn is None

    def test_send_message_does_not_fall_back_on_auth_failure(self):
        client, session, _, _ = _client(FakeResponse(200, ME_PAYLOAD), FakeResponse(401))

        with pytest.raises(AuthExpiredError):
            asyncio.run(client.send_message("2-abc", "Hello"))
        assert len(session.requests) == 2

    def test_empty_message_is_rejected_before_any_request(self):
        client, session, _, _ = _client()

        with pytest.raises(RunnerError) as excinfo:
            asyncio.run(client.send_message("2-abc", "   "))
        assert excinfo.value.code == "EMPTY_MESSAGE"
        assert session.requests == []

    def test_mark_as_read(self):
        client, session, _, _ = _client(FakeResponse(200, {}))

        asyncio.run(client.mark_as_read("2-abc"))

        request = session.requests[0]
        assert request["method"] == "POST"
        assert request["url"] == (
            "https://www.linkedin.com/voyager/api/messaging/conversations/"
            "urn%3Ali%3AmessagingThread%3A2-abc"
        )
        assert request["json"] == {"patch": {"$set": {"read": True}}}
