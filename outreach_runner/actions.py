"""Scheduled actions and executor results."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

ACTION_TYPES = (
    "visit",
    "invite",
    "message",
    "follow",
    "email",
    "connect_message",
    "visit_follow_connect",
    "email_message",
)

# Failures whose message carries this marker are worth another attempt later.
MISSING_ELEMENT_MARKER = "Could not find"

_PUBLIC_ID_RE = re.compile(r"/in/([^/?#]+)")


class ActionStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


def public_id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    match = _PUBLIC_ID_RE.search(url)
    return match.group(1) if match else None


@dataclass
class Prospect:
    id: Any
    full_name: str = ""
    profile_url: str = ""
    public_id: str | None = None

    def __post_init__(self) -> None:
        if not self.public_id:
            self.public_id = public_id_from_url(self.profile_url)

    @property
    def first_name(self) -> str:
        parts = (self.full_name or "").split()
        return parts[0] if parts else ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "Prospect":
        data = payload or {}
        return cls(
            id=data.get("id"),
            full_name=data.get("full_name") or "",
            profile_url=data.get("profile_url") or "",
            public_id=data.get("linkedin_id") or data.get("public_id"),
        )


@dataclass
class ScheduledAction:
    id: Any
    action_type: str
    target: Prospect
    payload: dict[str, Any] = field(default_factory=dict)
    scheduled_for: str | None = None
    status: ActionStatus = ActionStatus.PENDING
    retry_count: int = 0
    campaign_id: Any = None
    campaign_name: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ScheduledAction":
        """Build from the queue's `action` object."""
        return cls(
            id=data["id"],
            action_type=str(data.get("action_type") or ""),
            target=Prospect.from_payload(data.get("prospect")),
            payload=dict(data.get("action_data") or {}),
            scheduled_for=data.get("scheduled_for"),
            retry_count=int(data.get("retry_count") or 0),
            campaign_id=data.get("campaign_id"),
            campaign_name=data.get("campaign_name"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledAction":
        target = data.get("target") or {}
        return cls(
            id=data["id"],
            action_type=data["action_type"],
            target=Prospect(**target),
            payload=dict(data.get("payload") or {}),
            scheduled_for=data.get("scheduled_for"),
            status=ActionStatus(data.get("status", ActionStatus.PENDING.value)),
            retry_count=int(data.get("retry_count") or 0),
            campaign_id=data.get("campaign_id"),
            campaign_name=data.get("campaign_name"),
        )


@dataclass
class ActionResult:
    success: bool
    message: str
    requires_context_switch: bool = False
    retry: bool | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **details: Any) -> "ActionResult":
        return cls(success=True, message=message, details=details)

    @classmethod
    def failed(
        cls, message: str, retry: bool | None = None, **details: Any
    ) -> "ActionResult":
        return cls(success=False, message=message, retry=retry, details=details)

    @classmethod
    def context_switch(cls, message: str) -> "ActionResult":
        return cls(success=True, message=message, requires_context_switch=True)

    def should_retry(self) -> bool:
        if self.success:
            return False
        if self.retry is not None:
            return self.retry
        return MISSING_ELEMENT_MARKER in (self.message or "")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.requires_context_switch:
            payload["requires_context_switch"] = True
        if self.details:
            payload.update(self.details)
        return payload
