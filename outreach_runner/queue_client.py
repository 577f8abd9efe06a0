"""HTTP client for the backend action queue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import aiohttp

from outreach_runner.actions import ActionResult, ScheduledAction
from outreach_runner.errors import AuthExpiredError, RunnerError, TransientNetworkError
from utils.log_utils import tprint
from utils.settings_store import deep_log, get_settings, is_deep_logging


@dataclass
class NextActionResponse:
    has_action: bool
    action: ScheduledAction | None = None
    remaining_today: int | None = None
    message: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "NextActionResponse":
        raw_action = payload.get("action")
        action = ScheduledAction.from_payload(raw_action) if raw_action else None
        remaining = payload.get("remaining_today")
        if remaining is None:
            limit = payload.get("daily_limit")
            done = payload.get("today_count")
            if limit is not None and done is not None:
                remaining = int(limit) - int(done)
        return cls(
            has_action=bool(payload.get("has_action")) and action is not None,
            action=action,
            remaining_today=int(remaining) if remaining is not None else None,
            message=payload.get("message"),
        )


@dataclass
class VerificationResult:
    success: bool
    verified: bool
    message: str | None = None
    account_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VerificationResult":
        account = payload.get("linkedin_account") or {}
        return cls(
            success=bool(payload.get("success")),
            verified=bool(payload.get("verified")),
            message=payload.get("message") or payload.get("error"),
            account_name=account.get("full_name"),
            raw=payload,
        )


class RemoteQueueClient:
    """Talks to the backend's extension endpoints with a bearer token.

    Network failures, timeouts, 5xx and 429 raise ``TransientNetworkError``;
    401/403 raise ``AuthExpiredError``. Endpoints that answer a refusal with a
    JSON body (account verification) pass ``accept_statuses``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        settings: dict | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = (base_url or self._settings.get("api_base_url") or "").rstrip("/")
        self._token = token if token is not None else self._settings.get("api_token")
        self._timeout = float(self._settings.get("api_timeout_secs", 30))
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
        return self._session

    async def _call(
        self,
        method: str,
        endpoint: str,
        body: dict | None = None,
        accept_statuses: tuple[int, ...] = (),
    ) -> dict[str, Any]:
        url = f"{self._base_url}{endpoint}"
        if is_deep_logging():
            deep_log(f"[DEEP][QUEUE_API] {method} {url} body={body!r}")
        session = self._get_session()
        try:
            async with session.request(method, url, json=body, headers=self._headers()) as resp:
                status = resp.status
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientNetworkError(f"{method} {endpoint} failed: {exc}") from exc

        if status in accept_statuses and isinstance(payload, dict):
            return payload
        if status in (401, 403):
            raise AuthExpiredError(f"Backend rejected credentials ({status})")
        if status == 429 or status >= 500:
            raise TransientNetworkError(
                f"{method} {endpoint} returned {status}", code=f"QUEUE_HTTP_{status}"
            )
        if status >= 400:
            detail = None
            if isinstance(payload, dict):
                detail = payload.get("error") or payload.get("message")
            raise RunnerError(
                f"QUEUE_HTTP_{status}",
                f"{method} {endpoint} returned {status}" + (f": {detail}" if detail else ""),
            )
        if not isinstance(payload, dict):
            raise TransientNetworkError(f"{method} {endpoint} returned a non-JSON body")
        return payload

    async def next_action(self) -> NextActionResponse:
        payload = await self._call("GET", "/extension/actions/next")
        if not payload.get("success", True):
            raise TransientNetworkError(
                f"Failed to get next action: {payload.get('error') or payload.get('message')}"
            )
        return NextActionResponse.from_payload(payload)

    async def complete_action(self, action_id: Any, result: ActionResult) -> dict[str, Any]:
        body = {
            "status": "completed" if result.success else "failed",
            "result": result.message if result.success else None,
            "error": None if result.success else result.message,
            "retry": result.should_retry(),
        }
        tprint(f"[QUEUE_API] Reporting action {action_id}: {body['status']} retry={body['retry']}")
        return await self._call("POST", f"/extension/actions/{action_id}/complete", body)

    async def verify_account(self, profile_url: str, name: str | None = None) -> VerificationResult:
        payload = await self._call(
            "POST",
            "/extension/verify-account",
            {"linkedin_profile_url": profile_url, "linkedin_name": name},
            accept_statuses=(400, 403),
        )
        return VerificationResult.from_payload(payload)

    async def save_prospect_email(self, public_id: str, email: str) -> dict[str, Any]:
        return await self._call(
            "PATCH", f"/extension/prospects/{quote(public_id, safe='')}/email", {"email": email}
        )

    async def sync_inbox(self, conversations: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._call("POST", "/inbox/sync", {"conversations": conversations})

    async def sync_conversation_messages(
        self, conversation_id: Any, messages: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return await self._call(
            "POST", f"/inbox/{conversation_id}/sync-messages", {"messages": messages}
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
