"""Pull conversations from the platform and push them to the backend inbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from outreach_runner.errors import AuthExpiredError, RunnerError
from outreach_runner.platform_api import GraphApiClient
from outreach_runner.queue_client import RemoteQueueClient
from utils.log_utils import tprint


@dataclass
class SyncReport:
    conversations: int = 0
    messages: int = 0
    message: str | None = None
    api_error: str | None = None
    failed_conversations: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.api_error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "conversations": self.conversations,
            "messages": self.messages,
            "message": self.message,
            "api_error": self.api_error,
            "failed_conversations": list(self.failed_conversations),
        }


class InboxSync:
    def __init__(
        self,
        graph: GraphApiClient,
        backend: RemoteQueueClient,
        *,
        positional_fallback: bool = True,
    ) -> None:
        self._graph = graph
        self._backend = backend
        self._positional_fallback = positional_fallback

    async def sync(self, count: int = 50, include_messages: bool = False) -> SyncReport:
        """Fetch and resolve conversations, then push them in one batch.

        A backend failure is recorded on the report; the platform-side counts
        are still returned. Auth failures propagate.
        """
        views = await self._graph.fetch_conversations(
            count, positional_fallback=self._positional_fallback
        )
        report = SyncReport(conversations=len(views))
        payload: list[dict[str, Any]] = []
        for view in views:
            item = view.to_sync_payload()
            if include_messages:
                try:
                    messages = await self._graph.fetch_messages(view.id)
                except AuthExpiredError:
                    raise
                except RunnerError as exc:
                    tprint(f"[SYNC][WARN] Messages for {view.id} failed: {exc}")
                    report.failed_conversations.append(view.id)
                else:
                    item["messages"] = [m.to_sync_payload() for m in messages]
                    report.messages += len(messages)
            payload.append(item)

        try:
            response = await self._backend.sync_inbox(payload)
            report.message = response.get("message")
        except AuthExpiredError:
            raise
        except RunnerError as exc:
            tprint(f"[SYNC][WARN] Backend inbox sync failed: {exc}")
            report.api_error = str(exc)
        tprint(
            f"[SYNC] Synced {report.conversations} conversations, {report.messages} messages"
        )
        return report

    async def sync_conversation(
        self, backend_conversation_id: Any, conversation_id: str, count: int = 50
    ) -> SyncReport:
        messages = await self._graph.fetch_messages(conversation_id, count)
        report = SyncReport(messages=len(messages))
        try:
            response = await self._backend.sync_conversation_messages(
                backend_conversation_id, [m.to_sync_payload() for m in messages]
            )
            report.message = response.get("message")
        except AuthExpiredError:
            raise
        except RunnerError as exc:
            tprint(f"[SYNC][WARN] Message sync for {backend_conversation_id} failed: {exc}")
            report.api_error = str(exc)
        return report
