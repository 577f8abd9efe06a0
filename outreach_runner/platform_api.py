"""Authenticated client for the platform's internal graph API."""

from __future__ import annotations

import asyncio
import base64
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import aiohttp

from outreach_runner.entity_graph import (
    ConversationView,
    MessageView,
    NormalizedResponse,
    resolve_conversations,
    resolve_messages,
)
from outreach_runner.errors import (
    AuthExpiredError,
    PlatformRequestError,
    RateLimitExceeded,
    RunnerError,
    TransientNetworkError,
)
from outreach_runner.rate_limiter import RateLimiter
from utils.log_utils import tprint
from utils.settings_store import deep_log, get_settings, is_deep_logging

API_PATH = "/voyager/api"
GRAPHQL_PATH = "/voyagerMessagingGraphQL/graphql"
CONVERSATIONS_QUERY_ID = "voyagerMessagingDashMessengerConversations.58f000d802f3d66a99c09d8ad7f5544b"
MESSAGES_QUERY_ID = "voyagerMessagingDashMessengerMessages.c7d0ab7f4b411aa8a849fbf8b210facc"
NORMALIZED_ACCEPT = "application/vnd.linkedin.normalized+json+2.1"
SEND_MESSAGE_PATH = "/voyagerMessagingDashMessengerMessages?action=createMessage"
DEFAULT_RETRY_AFTER_SECS = 60.0


@dataclass
class AuthContext:
    csrf_token: str
    cookies: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_cookies(cls, cookies: dict[str, str]) -> "AuthContext":
        """The CSRF token is the JSESSIONID cookie value without quotes."""
        session_id = cookies.get("JSESSIONID")
        if not session_id:
            raise AuthExpiredError("Not authenticated with the platform (no JSESSIONID cookie)")
        return cls(csrf_token=session_id.replace('"', ""), cookies=dict(cookies))

    @property
    def logged_in(self) -> bool:
        return bool(self.cookies.get("li_at"))

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


@dataclass
class SentMessage:
    conversation_id: str
    message_urn: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "conversation_id": self.conversation_id,
            "message_id": self.message_urn,
        }


def _thread_path(conversation_id: str) -> str:
    return "/messaging/conversations/" + quote(f"urn:li:messagingThread:{conversation_id}", safe="")


def _tracking_id() -> str:
    return base64.b64encode(os.urandom(16)).decode("ascii")


def _retry_after_secs(raw: str | None) -> float:
    if not raw:
        return DEFAULT_RETRY_AFTER_SECS
    try:
        return max(0.0, float(raw))
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECS


class GraphApiClient:
    """Every request waits for a rate-limiter slot before it goes out.

    A 429 is retried once after the server's ``Retry-After`` hint; a second
    429 raises ``RateLimitExceeded``. 401/403 mean the session is gone.
    """

    def __init__(
        self,
        auth: AuthContext,
        limiter: RateLimiter,
        *,
        base_url: str | None = None,
        settings: dict | None = None,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        origin = (base_url or self._settings.get("platform_base_url") or "").rstrip("/")
        self._base_url = f"{origin}{API_PATH}"
        self._auth = auth
        self._limiter = limiter
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep or asyncio.sleep
        self._self_urn: str | None = None

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "accept": NORMALIZED_ACCEPT,
            "csrf-token": self._auth.csrf_token,
            "x-restli-protocol-version": "2.0.0",
            "x-li-lang": "en_US",
        }
        if self._auth.cookies:
            headers["cookie"] = self._auth.cookie_header()
        if has_body:
            headers["content-type"] = "application/json; charset=UTF-8"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_session = True
        return self._session

    async def request(
        self, endpoint: str, method: str = "GET", body: dict | None = None
    ) -> dict[str, Any]:
        url = endpoint if endpoint.startswith("http") else f"{self._base_url}{endpoint}"
        for attempt in (1, 2):
            await self._limiter.acquire()
            start = time.monotonic()
            try:
                async with self._get_session().request(
                    method, url, json=body, headers=self._headers(body is not None)
                ) as resp:
                    status = resp.status
                    retry_after = resp.headers.get("Retry-After")
                    if status < 400:
                        payload = await resp.json(content_type=None)
                    else:
                        payload = None
                        error_text = await resp.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransientNetworkError(f"{method} {endpoint} failed: {exc}") from exc

            if is_deep_logging():
                elapsed = int((time.monotonic() - start) * 1000)
                deep_log(f"[DEEP][PLATFORM_API] {method} {endpoint} -> {status} ({elapsed}ms)")

            if status == 429:
                wait = _retry_after_secs(retry_after)
                if attempt == 2:
                    raise RateLimitExceeded(wait)
                tprint(f"[PLATFORM_API][WARN] Throttled, retrying after {wait:g}s")
                await self._sleep(wait)
                continue
            if status in (401, 403):
                raise AuthExpiredError(f"Platform session rejected ({status})")
            if status >= 500:
                raise TransientNetworkError(f"{method} {endpoint} returned {status}")
            if status >= 400:
                raise PlatformRequestError(status, error_text[:200] or f"Platform API error: {status}")
            return payload if isinstance(payload, dict) else {}
        raise RateLimitExceeded(DEFAULT_RETRY_AFTER_SECS)

    async def request_normalized(
        self, endpoint: str, method: str = "GET", body: dict | None = None
    ) -> NormalizedResponse:
        return NormalizedResponse.from_payload(await self.request(endpoint, method, body))

    async def fetch_self_urn(self) -> str | None:
        if self._self_urn:
            return self._self_urn
        payload = await self.request("/me")
        urn = ((payload.get("miniProfile") or {}).get("entityUrn")) or payload.get("entityUrn")
        if not urn:
            data = payload.get("data") or {}
            urn = data.get("*miniProfile") or data.get("entityUrn")
        if not urn:
            for entity in payload.get("included") or []:
                candidate = entity.get("entityUrn") or ""
                if candidate.startswith("urn:li:fsd_profile:"):
                    urn = candidate
                    break
        if urn and urn.startswith("urn:li:fs_miniProfile:"):
            urn = "urn:li:fsd_profile:" + urn.rsplit(":", 1)[-1]
        self._self_urn = urn
        if urn:
            tprint(f"[PLATFORM_API] Resolved own profile URN {urn}")
        else:
            tprint("[PLATFORM_API][WARN] Could not resolve own profile URN")
        return urn

    async def fetch_conversations(
        self, count: int = 20, *, positional_fallback: bool = True
    ) -> list[ConversationView]:
        self_urn = await self.fetch_self_urn()
        mailbox = quote(self_urn or "", safe="")
        variables = f"(categories:List(PRIMARY_INBOX,INBOX),count:{count},mailboxUrn:{mailbox})"
        endpoint = f"{GRAPHQL_PATH}?queryId={CONVERSATIONS_QUERY_ID}&variables={variables}"
        response = await self.request_normalized(endpoint)
        views = resolve_conversations(response, self_urn, positional_fallback=positional_fallback)
        tprint(f"[PLATFORM_API] Fetched {len(views)} conversations")
        return views

    async def fetch_messages(self, conversation_id: str, count: int = 20) -> list[MessageView]:
        self_urn = await self.fetch_self_urn()
        conversation_urn = quote(f"urn:li:msg_conversation:({self_urn},{conversation_id})", safe="")
        delivered_at = int(time.time() * 1000)
        variables = (
            f"(deliveredAt:{delivered_at},conversationUrn:{conversation_urn},"
            f"countBefore:{count},countAfter:0)"
        )
        endpoint = f"{GRAPHQL_PATH}?queryId={MESSAGES_QUERY_ID}&variables={variables}"
        response = await self.request_normalized(endpoint)
        return resolve_messages(response, self_urn)

    async def send_message(self, conversation_id: str, content: str) -> SentMessage:
        """Post ``content`` into an existing conversation.

        The messenger endpoint is tried first. A plain 4xx from it falls back to
        the legacy thread-events endpoint; auth and throttling errors do not.
        """
        text = (content or "").strip()
        if not text:
            raise RunnerError("EMPTY_MESSAGE", "No message content provided")
        self_urn = await self.fetch_self_urn()
        if not self_urn:
            raise RunnerError("PROFILE_UNKNOWN", "Could not determine your own profile")
        body = {
            "dedupeByClientGeneratedToken": False,
            "mailboxUrn": self_urn,
            "message": {
                "body": {"attributes": [], "text": text},
                "conversationUrn": f"urn:li:msg_conversation:({self_urn},{conversation_id})",
                "originToken": str(uuid.uuid4()),
                "renderContentUnions": [],
            },
            "trackingId": _tracking_id(),
        }
        try:
            payload = await self.request(SEND_MESSAGE_PATH, "POST", body)
        except PlatformRequestError as exc:
            tprint(f"[PLATFORM_API][WARN] Messenger send failed ({exc.status}), trying thread events")
            payload = await self.request(
                f"{_thread_path(conversation_id)}/events",
                "POST",
                {
                    "eventCreate": {
                        "value": {
                            "com.linkedin.voyager.messaging.create.MessageCreate": {
                                "body": text,
                                "attachments": [],
                                "attributedBody": {"text": text, "attributes": []},
                            }
                        }
                    },
                    "dedupeByClientGeneratedToken": False,
                },
            )
        value = payload.get("value") or (payload.get("data") or {}).get("value") or {}
        sent = SentMessage(conversation_id=conversation_id, message_urn=value.get("entityUrn"))
        tprint(f"[PLATFORM_API] Message sent to conversation {conversation_id}")
        return sent

    async def mark_as_read(self, conversation_id: str) -> None:
        await self.request(
            _thread_path(conversation_id), "POST", {"patch": {"$set": {"read": True}}}
        )
        tprint(f"[PLATFORM_API] Conversation {conversation_id} marked as read")

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
