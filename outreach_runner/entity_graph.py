"""Resolve the platform's normalized entity graph into conversation and message views.

Platform responses are flat: ``included`` holds every entity once, keyed by
``entityUrn`` (or ``$id``), and records reference each other by storing those
keys in fields such as ``*participants`` or ``*sender``. The resolver builds a
single index per response and walks references through it; a reference that
is missing from ``included`` resolves to ``None`` instead of raising.

Self/other disambiguation for conversation participants is ordered:

1. an explicit self marker on the participant or its profile,
2. a comparison against the caller's own profile URN, when known,
3. the positional heuristic: the first participant is assumed to be self.

The positional heuristic is a known-fragile assumption about payload order.
It can be disabled with ``positional_fallback=False``, and every view records
which rule picked its participant in ``participant_resolution``.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from utils.log_utils import tprint
from utils.settings_store import deep_log, is_deep_logging

CONVERSATION_TYPE = "com.linkedin.voyager.dash.messaging.MessengerConversation"
MESSAGE_TYPE = "com.linkedin.voyager.dash.messaging.MessengerMessage"
LEGACY_MESSAGE_EVENT = "com.linkedin.voyager.messaging.event.MessageEvent"
OUTBOUND_SUBTYPE = "MEMBER_TO_MEMBER_OUTBOUND"
PROFILE_URL_TEMPLATE = "https://www.linkedin.com/in/{public_id}/"

SELF_MARKER_FIELDS = ("isSelf", "self", "currentUser", "fromCurrentUser")

PARTICIPANTS_FIELDS = ("*participants", "participants")
PROFILE_FIELDS = ("*profile", "profile", "*miniProfile", "miniProfile")
LAST_MESSAGE_FIELDS = ("*lastMessage", "lastMessage")
SENDER_FIELDS = ("*sender", "sender", "*from", "from")

_CONVERSATION_ID_RE = re.compile(r",([^)]+)\)")
_THREAD_ID_RE = re.compile(r"messagingThread:(.+)")
_FSD_PROFILE_RE = re.compile(r"fsd_profile:([^,)\s]+)")

Entity = dict[str, Any]


def _entity_key(entity: Entity) -> str | None:
    return entity.get("entityUrn") or entity.get("$id")


def _epoch_ms_to_iso(value: Any) -> str | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def extract_id_from_urn(urn: str | None) -> str | None:
    if not urn:
        return None
    return urn.rsplit(":", 1)[-1] or None


def conversation_id_from_urn(urn: str | None) -> str | None:
    """``urn:li:msg_conversation:(urn:li:fsd_profile:X,2-abc)`` -> ``2-abc``."""
    if not urn:
        return None
    match = _CONVERSATION_ID_RE.search(urn) or _THREAD_ID_RE.search(urn)
    if match:
        return match.group(1)
    return extract_id_from_urn(urn)


def fsd_profile_id(urn: str | None) -> str | None:
    if not urn:
        return None
    match = _FSD_PROFILE_RE.search(urn)
    return match.group(1) if match else None


@dataclass
class NormalizedResponse:
    elements: list[Any] = field(default_factory=list)
    included: list[Entity] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "NormalizedResponse":
        """Accept REST (``data.elements``/``elements``) and GraphQL envelopes."""
        payload = payload or {}
        included = [e for e in payload.get("included") or [] if isinstance(e, dict)]
        elements: list[Any] = []
        data = payload.get("data")
        if isinstance(data, dict):
            elements = data.get("elements") or data.get("*elements") or []
            nested = data.get("data")
            if not elements and isinstance(nested, dict):
                for value in nested.values():
                    if isinstance(value, dict):
                        elements = value.get("elements") or value.get("*elements") or []
                        if elements:
                            break
        if not elements:
            elements = payload.get("elements") or []
        return cls(elements=list(elements), included=included)


class EntityIndex:
    """Reference key to entity lookup built in one pass over ``included``."""

    def __init__(self, entities: dict[str, Entity]) -> None:
        self._entities = entities

    @classmethod
    def build(cls, included: Iterable[Entity]) -> "EntityIndex":
        entities: dict[str, Entity] = {}
        for entity in included:
            urn = entity.get("entityUrn")
            if urn:
                entities[urn] = entity
            alt = entity.get("$id")
            if alt:
                entities[alt] = entity
        return cls(entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, key: object) -> bool:
        return key in self._entities

    def get(self, key: Any) -> Entity | None:
        if isinstance(key, dict):
            # Inlined entity, or an object wrapping its own reference.
            ref = _entity_key(key)
            return self._entities.get(ref, key) if ref else key
        if not isinstance(key, str):
            return None
        return self._entities.get(key)

    def deref(self, record: Entity | None, fields: Iterable[str]) -> Entity | None:
        """Resolve the first populated reference field of ``record``."""
        if not record:
            return None
        for name in fields:
            value = record.get(name)
            if value is None:
                continue
            return self.get(value)
        return None

    def deref_many(self, record: Entity | None, fields: Iterable[str]) -> list[Entity | None]:
        if not record:
            return []
        for name in fields:
            values = record.get(name)
            if values:
                return [self.get(v) for v in values]
        return []

    def of_type(self, type_name: str, urn_marker: str) -> list[Entity]:
        seen: set[int] = set()
        found: list[Entity] = []
        for entity in self._entities.values():
            if id(entity) in seen:
                continue
            seen.add(id(entity))
            urn = entity.get("entityUrn") or ""
            if entity.get("$type") == type_name or urn_marker in urn:
                found.append(entity)
        return found


@dataclass(frozen=True)
class ConversationView:
    id: str
    participant_name: str | None
    participant_id: str | None
    participant_url: str | None
    participant_avatar_url: str | None
    last_message_preview: str | None
    last_message_at: str | None
    is_unread: bool
    unread_count: int
    participant_resolution: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_sync_payload(self) -> dict[str, Any]:
        """Shape expected by the backend inbox sync endpoint."""
        return {
            "linkedin_conversation_id": self.id,
            "participant_name": self.participant_name or "Unknown",
            "participant_linkedin_id": self.participant_id,
            "participant_profile_url": self.participant_url,
            "participant_avatar_url": self.participant_avatar_url,
            "last_message_preview": self.last_message_preview,
            "last_message_at": self.last_message_at,
            "is_unread": self.is_unread,
            "unread_count": self.unread_count,
        }


@dataclass(frozen=True)
class MessageView:
    id: str
    content: str
    is_from_me: bool
    sender_name: str | None
    sender_id: str | None
    sent_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_sync_payload(self) -> dict[str, Any]:
        return {
            "linkedin_message_id": self.id,
            "content": self.content,
            "is_from_me": self.is_from_me,
            "sender_name": self.sender_name or "Unknown",
            "sender_linkedin_id": self.sender_id,
            "sent_at": self.sent_at,
        }


def _full_name(profile: Entity) -> str | None:
    name = f"{profile.get('firstName') or ''} {profile.get('lastName') or ''}".strip()
    return name or profile.get("name") or None


def _avatar_url(profile: Entity) -> str | None:
    picture = profile.get("profilePicture") or profile.get("picture")
    if not isinstance(picture, dict):
        return None
    reference = picture.get("displayImageReference")
    image = reference.get("vectorImage") if isinstance(reference, dict) else None
    if not isinstance(image, dict):
        image = picture
    root = image.get("rootUrl")
    artifacts = image.get("artifacts")
    if not root or not isinstance(artifacts, list) or not artifacts:
        return None
    largest = artifacts[-1]
    segment = largest.get("fileIdentifyingUrlPathSegment") if isinstance(largest, dict) else None
    return f"{root}{segment}" if segment else None


def _has_self_marker(*entities: Entity | None) -> bool:
    for entity in entities:
        if entity and any(entity.get(name) is True for name in SELF_MARKER_FIELDS):
            return True
    return False


def _has_any_marker(*entities: Entity | None) -> bool:
    for entity in entities:
        if entity and any(name in entity for name in SELF_MARKER_FIELDS):
            return True
    return False


def _same_profile(profile: Entity | None, self_urn: str | None) -> bool:
    if not profile or not self_urn:
        return False
    urn = profile.get("entityUrn")
    if urn == self_urn:
        return True
    mine = fsd_profile_id(self_urn)
    return mine is not None and mine == fsd_profile_id(urn)


def _pick_other_participant(
    index: EntityIndex,
    participants: list[Entity | None],
    self_urn: str | None,
    positional_fallback: bool,
) -> tuple[Entity | None, str | None]:
    """Return (profile of the other party, rule that picked it)."""
    pairs = [(p, index.deref(p, PROFILE_FIELDS) or p) for p in participants]
    if not pairs:
        return None, None

    if any(_has_any_marker(p, prof) for p, prof in pairs):
        for participant, profile in pairs:
            if participant is not None and not _has_self_marker(participant, profile):
                return profile, "self_marker"
        return None, "self_marker"

    if self_urn:
        for participant, profile in pairs:
            if participant is not None and not _same_profile(profile, self_urn):
                return profile, "self_urn"
        return None, "self_urn"

    if len(pairs) == 1:
        return pairs[0][1], None

    if positional_fallback:
        # Assumes the platform lists the mailbox owner first.
        return pairs[1][1], "positional"
    return None, None


def _last_message_preview(index: EntityIndex, record: Entity) -> str | None:
    message = index.deref(record, LAST_MESSAGE_FIELDS)
    if message:
        text = (message.get("body") or {}).get("text")
        if text:
            return text
    events = record.get("*events") or []
    if events:
        return _legacy_event_text(index.get(events[0]))
    return None


def _legacy_event_text(event: Entity | None) -> str | None:
    if not event:
        return None
    content = (event.get("eventContent") or {}).get(LEGACY_MESSAGE_EVENT)
    if not content:
        return None
    return (content.get("attributedBody") or {}).get("text") or content.get("body") or None


def _conversation_records(response: NormalizedResponse, index: EntityIndex) -> list[Entity]:
    records: list[Entity] = []
    for element in response.elements:
        resolved = index.get(element)
        if resolved is not None:
            records.append(resolved)
    if not records:
        records = index.of_type(CONVERSATION_TYPE, "msg_conversation")
    return records


def resolve_conversations(
    response: NormalizedResponse | dict[str, Any],
    self_urn: str | None = None,
    *,
    positional_fallback: bool = True,
) -> list[ConversationView]:
    if isinstance(response, dict):
        response = NormalizedResponse.from_payload(response)
    index = EntityIndex.build(response.included)
    views: list[ConversationView] = []
    for record in _conversation_records(response, index):
        urn = record.get("entityUrn") or record.get("backendUrn") or record.get("*conversation")
        conversation_id = conversation_id_from_urn(urn)
        if not conversation_id:
            tprint(f"[GRAPH][WARN] Skipping conversation without id: {urn!r}")
            continue
        participants = index.deref_many(record, PARTICIPANTS_FIELDS)
        profile, rule = _pick_other_participant(index, participants, self_urn, positional_fallback)
        public_id = profile.get("publicIdentifier") if profile else None
        unread = int(record.get("unreadCount") or 0)
        views.append(
            ConversationView(
                id=conversation_id,
                participant_name=_full_name(profile) if profile else None,
                participant_id=public_id,
                participant_url=PROFILE_URL_TEMPLATE.format(public_id=public_id) if public_id else None,
                participant_avatar_url=_avatar_url(profile) if profile else None,
                last_message_preview=_last_message_preview(index, record),
                last_message_at=_epoch_ms_to_iso(record.get("lastActivityAt")),
                is_unread=unread > 0,
                unread_count=unread,
                participant_resolution=rule,
            )
        )
    if is_deep_logging():
        deep_log(f"[DEEP][GRAPH] Resolved {len(views)} conversations from {len(index)} entities")
    return views


def _is_from_me(record: Entity, sender: Entity | None, profile: Entity | None, self_urn: str | None) -> bool:
    if record.get("fromCurrentUser") is not None:
        return bool(record["fromCurrentUser"])
    if record.get("subtype"):
        return record["subtype"] == OUTBOUND_SUBTYPE
    if _has_self_marker(sender, profile):
        return True
    if not self_urn:
        return False
    if _same_profile(profile, self_urn):
        return True
    sender_ref = record.get("*sender") or record.get("*from")
    mine = fsd_profile_id(self_urn)
    return mine is not None and isinstance(sender_ref, str) and fsd_profile_id(sender_ref) == mine


def _message_records(response: NormalizedResponse, index: EntityIndex) -> list[Entity]:
    records: list[Entity] = []
    for element in response.elements:
        resolved = index.get(element)
        if resolved is not None:
            records.append(resolved)
    if not records:
        records = index.of_type(MESSAGE_TYPE, "msg_message")
    return records


def resolve_messages(
    response: NormalizedResponse | dict[str, Any],
    self_urn: str | None = None,
) -> list[MessageView]:
    """Resolve message records, oldest first. Undated messages sort last."""
    if isinstance(response, dict):
        response = NormalizedResponse.from_payload(response)
    index = EntityIndex.build(response.included)
    dated: list[tuple[int | None, MessageView]] = []
    for record in _message_records(response, index):
        urn = record.get("entityUrn")
        if not urn:
            continue
        text = (record.get("body") or {}).get("text")
        if text is None:
            text = _legacy_event_text(record)
        sender = index.deref(record, SENDER_FIELDS)
        profile = index.deref(sender, PROFILE_FIELDS) or sender
        delivered = record.get("deliveredAt") or record.get("createdAt")
        public_id = profile.get("publicIdentifier") if profile else None
        dated.append(
            (
                delivered,
                MessageView(
                    id=urn,
                    content=text or "",
                    is_from_me=_is_from_me(record, sender, profile, self_urn),
                    sender_name=_full_name(profile) if profile else None,
                    sender_id=public_id,
                    sent_at=_epoch_ms_to_iso(delivered),
                ),
            )
        )
    dated.sort(key=lambda pair: (pair[0] is None, pair[0] or 0))
    return [view for _, view in dated]
