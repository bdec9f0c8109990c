"""AccessKeyRecord dataclass and key collection codec.

The key collection is persisted as ONE JSON document: an array of record
objects, pretty-printed (2-space indent) so the backend's native diff view
stays readable. JSON field names are camelCase and fixed:

    [
      {
        "name": "alice",
        "accessKey": "key-01hzx3k8w2m6a9q4t7c5e1n0bv",
        "botToken": "123456:ABC...",
        "chatId": "987654321",
        "createdAt": "2026-01-01T00:00:00.000Z",
        "expiresAt": "2026-01-31T00:00:00.000Z"
      }
    ]

Timestamps are written in JavaScript ``Date.toISOString()`` form (millisecond
precision, ``Z`` suffix) so documents stay compatible with the existing panel.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from app.errors import MalformedDocument

# JSON field name → attribute name
_FIELDS: dict[str, str] = {
    "name": "name",
    "accessKey": "access_key",
    "botToken": "bot_token",
    "chatId": "chat_id",
    "createdAt": "created_at",
    "expiresAt": "expires_at",
}


# ─── Timestamp helpers ────────────────────────────────────────────────────────


def utcnow() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    return truncate_ms(datetime.now(timezone.utc))


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision so values survive a JSON round-trip."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_timestamp(value: datetime) -> str:
    """Serialise a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC)."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: If ``raw`` is not an ISO-8601 string.
    """
    if not isinstance(raw, str):
        raise ValueError(f"timestamp must be a string, got {type(raw).__name__}")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ─── AccessKeyRecord ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AccessKeyRecord:
    """One access key, the sole persisted entity.

    Frozen: mutations (extend) produce a new record via ``dataclasses.replace``.
    ``expired`` is never stored — see ``is_expired()``.
    """

    name: str
    """Caller-supplied label. Non-empty."""
    access_key: str
    """Unique within the collection. Generated on create, never caller-supplied."""
    bot_token: str
    """Opaque credential of the owner's messaging bot. Never logged."""
    chat_id: str
    """Opaque destination identifier for the owner's bot."""
    created_at: datetime
    """UTC. Set once at creation."""
    expires_at: datetime
    """UTC. Changed only by extend. Always >= created_at."""

    def __post_init__(self) -> None:
        for attr in ("name", "access_key", "bot_token", "chat_id"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{attr} must be a non-empty string")
        if self.expires_at < self.created_at:
            raise ValueError("expires_at must not be earlier than created_at")

    def is_expired(self, now: datetime) -> bool:
        """Active → Expired once ``now`` is strictly past ``expires_at``."""
        return now > self.expires_at

    def to_dict(self) -> dict[str, str]:
        """Serialise to the persisted JSON object (camelCase fields)."""
        return {
            "name": self.name,
            "accessKey": self.access_key,
            "botToken": self.bot_token,
            "chatId": self.chat_id,
            "createdAt": format_timestamp(self.created_at),
            "expiresAt": format_timestamp(self.expires_at),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "AccessKeyRecord":
        """Construct a record from one persisted JSON object.

        Numeric ``chatId`` values (Telegram chat ids are integers) are coerced
        to str.

        Raises:
            ValueError: On a missing field, wrong type, or broken invariant.
        """
        if not isinstance(raw, dict):
            raise ValueError(f"record must be an object, got {type(raw).__name__}")
        missing = [name for name in _FIELDS if name not in raw]
        if missing:
            raise ValueError(f"record is missing fields: {missing}")

        chat_id = raw["chatId"]
        if isinstance(chat_id, int) and not isinstance(chat_id, bool):
            chat_id = str(chat_id)

        return cls(
            name=raw["name"],
            access_key=raw["accessKey"],
            bot_token=raw["botToken"],
            chat_id=chat_id,
            created_at=parse_timestamp(raw["createdAt"]),
            expires_at=parse_timestamp(raw["expiresAt"]),
        )


# ─── Collection codec ─────────────────────────────────────────────────────────


def decode_collection(content: bytes) -> list[AccessKeyRecord]:
    """Decode a key collection document.

    Raises:
        MalformedDocument: Empty content, invalid UTF-8/JSON, a non-array top
                           level, or any record that fails validation.
    """
    if not content or not content.strip():
        raise MalformedDocument("Document is empty")
    try:
        raw = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedDocument(f"Document is not valid JSON: {exc}") from exc

    if not isinstance(raw, list):
        raise MalformedDocument(
            f"Document top level must be an array, got {type(raw).__name__}"
        )

    records: list[AccessKeyRecord] = []
    for index, item in enumerate(raw):
        try:
            records.append(AccessKeyRecord.from_dict(item))
        except ValueError as exc:
            raise MalformedDocument(f"Invalid record at index {index}: {exc}") from exc
    return records


def encode_collection(records: Iterable[AccessKeyRecord]) -> bytes:
    """Encode records as a pretty-printed JSON array (trailing newline)."""
    payload = [record.to_dict() for record in records]
    return (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def find_record(records: list[AccessKeyRecord], access_key: str) -> int:
    """Index of the record with exactly ``access_key``, or -1."""
    for index, record in enumerate(records):
        if record.access_key == access_key:
            return index
    return -1
