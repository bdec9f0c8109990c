"""KeyLifecycleManager — create / extend / delete / validate access keys.

Write path (panel-driven, infrequent):
    KeyStore.load() → mutate → KeyStore.save(version)
  No lock is held across the two network calls. A concurrent writer makes the
  backend reject the stale version; that ConcurrencyConflict is surfaced as
  WriteConflict and NEVER retried here — the caller reloads and retries.

Read path (hot, every /api/send):
    ReadCache.get() → find record → Valid | Invalid | Expired
  Never touches the KeyStore. May lag a write elsewhere by up to the cache TTL.

Expiry is lazy: a record is Expired when now > expiresAt at validation time.
There is no stored flag and no background sweep; extend() brings any record
back to Active. Validating an expired key schedules exactly one owner
notification as a detached task whose failure is only logged.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.constants import (
    DEFAULT_ACCESS_KEY_PREFIX,
    DEFAULT_EXPIRED_MESSAGE,
    DEFAULT_EXTENSION_DAYS,
    MAX_KEY_DURATION_DAYS,
)
from app.errors import ConcurrencyConflict, InvalidKeyRequest, KeyNotFound, WriteConflict
from app.relay.telegram import MessagingRelay
from app.store.cache import ReadCache
from app.store.key_store import KeyStore
from app.store.models import AccessKeyRecord, find_record, utcnow
from app.utils.logger import get_logger, mask_key
from app.utils.ulid import generate_access_key

logger = get_logger(__name__)


# ─── ValidationResult ─────────────────────────────────────────────────────────


class ValidationStatus(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validate(). Invalid and Expired are normal results, not errors."""

    status: ValidationStatus
    record: Optional[AccessKeyRecord] = None
    reason: Optional[str] = None
    """For INVALID: 'unknown_key' or 'unavailable' (cache never populated)."""

    @property
    def is_valid(self) -> bool:
        return self.status is ValidationStatus.VALID


# ─── KeyLifecycleManager ──────────────────────────────────────────────────────


class KeyLifecycleManager:
    """Owns the key operations and expiry semantics.

    Args:
        store:           Authoritative KeyStore (write path + listing).
        cache:           ReadCache (validation path only).
        relay:           MessagingRelay for expiry notices (None disables them).
        extension_days:  Days added by extend_key().
        expired_message: Text of the expiry notice sent to the key owner.
        key_prefix:      Prefix for generated access keys.
        clock:           UTC ``datetime`` source; injectable for tests.
    """

    def __init__(
        self,
        store: KeyStore,
        cache: ReadCache,
        relay: Optional[MessagingRelay] = None,
        *,
        extension_days: int = DEFAULT_EXTENSION_DAYS,
        expired_message: str = DEFAULT_EXPIRED_MESSAGE,
        key_prefix: str = DEFAULT_ACCESS_KEY_PREFIX,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._relay = relay
        self._extension = timedelta(days=extension_days)
        self._expired_message = expired_message
        self._key_prefix = key_prefix
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    # ── Listing ───────────────────────────────────────────────────────────────

    async def list_keys(self) -> list[AccessKeyRecord]:
        """Return the full collection from the authoritative store."""
        records, _ = await self._store.load()
        return records

    # ── Create ────────────────────────────────────────────────────────────────

    async def create_key(
        self,
        name: str,
        bot_token: str,
        chat_id: str,
        duration_days: int,
    ) -> AccessKeyRecord:
        """Create a key valid for ``duration_days`` from now.

        Raises:
            InvalidKeyRequest:  A field is empty or duration_days is not an
                                integer in 1..MAX_KEY_DURATION_DAYS.
            WriteConflict:      Another writer committed first.
            BackendUnavailable: Backend failure.
        """
        _require_text(name=name, bot_token=bot_token, chat_id=chat_id)
        if (
            isinstance(duration_days, bool)
            or not isinstance(duration_days, int)
            or duration_days <= 0
        ):
            raise InvalidKeyRequest("days must be a positive integer.")
        if duration_days > MAX_KEY_DURATION_DAYS:
            raise InvalidKeyRequest(f"days must not exceed {MAX_KEY_DURATION_DAYS}.")

        records, version = await self._store.load()

        now = self._clock()
        record = AccessKeyRecord(
            name=name,
            access_key=generate_access_key(
                {r.access_key for r in records}, prefix=self._key_prefix
            ),
            bot_token=bot_token,
            chat_id=chat_id,
            created_at=now,
            expires_at=now + timedelta(days=duration_days),
        )
        records.append(record)

        await self._commit(records, version, f"[Panel] Create key: {name}")
        logger.info(
            "Access key created",
            name=name,
            access_key=mask_key(record.access_key),
            expires_at=record.expires_at.isoformat(),
        )
        return record

    # ── Extend ────────────────────────────────────────────────────────────────

    async def extend_key(self, access_key: str) -> AccessKeyRecord:
        """Push expiry to max(now, expiresAt) + extension_days.

        An expired key is revived to now + extension; a live key keeps its
        remaining validity. The record stays at the same position.

        Raises:
            KeyNotFound:        No record matches.
            InvalidKeyRequest:  The new expiry is past the last representable date.
            WriteConflict:      Another writer committed first.
            BackendUnavailable: Backend failure.
        """
        records, version = await self._store.load()
        index = find_record(records, access_key)
        if index == -1:
            raise KeyNotFound()

        current = records[index]
        base = max(self._clock(), current.expires_at)
        try:
            new_expiry = base + self._extension
        except OverflowError as exc:
            raise InvalidKeyRequest("Key expiry cannot be extended any further.") from exc
        updated = dataclasses.replace(current, expires_at=new_expiry)
        records[index] = updated

        await self._commit(records, version, f"[Panel] Extend key: {current.name}")
        logger.info(
            "Access key extended",
            access_key=mask_key(access_key),
            expires_at=updated.expires_at.isoformat(),
        )
        return updated

    # ── Delete ────────────────────────────────────────────────────────────────

    async def delete_key(self, access_key: str) -> None:
        """Remove the record with exactly ``access_key``.

        Raises:
            KeyNotFound:        No record matches (no commit is issued).
            WriteConflict:      Another writer committed first.
            BackendUnavailable: Backend failure.
        """
        records, version = await self._store.load()
        index = find_record(records, access_key)
        if index == -1:
            raise KeyNotFound()

        del records[index]
        await self._commit(records, version, f"[Panel] Delete key: {access_key}")
        logger.info("Access key deleted", access_key=mask_key(access_key))

    # ── Validate ──────────────────────────────────────────────────────────────

    async def validate(self, access_key: str) -> ValidationResult:
        """Classify ``access_key`` via the ReadCache. Never raises for outcomes."""
        records = await self._cache.get()
        if records is None:
            return ValidationResult(ValidationStatus.INVALID, reason="unavailable")

        index = find_record(records, access_key)
        if index == -1:
            return ValidationResult(ValidationStatus.INVALID, reason="unknown_key")

        record = records[index]
        if record.is_expired(self._clock()):
            logger.info("Expired access key used", access_key=mask_key(access_key))
            self._notify_expired(record)
            return ValidationResult(ValidationStatus.EXPIRED, record=record)

        return ValidationResult(ValidationStatus.VALID, record=record)

    async def validate_and_consume(self, access_key: str) -> ValidationResult:
        """Entry point for the send path: validate and trigger side effects."""
        return await self.validate(access_key)

    # ── Notifications ─────────────────────────────────────────────────────────

    def _notify_expired(self, record: AccessKeyRecord) -> None:
        """Fire-and-forget expiry notice to the key owner's bot."""
        if self._relay is None:
            return
        try:
            task = asyncio.create_task(
                self._relay.send_message(
                    record.bot_token, record.chat_id, self._expired_message
                )
            )
        except Exception as exc:
            logger.warning(
                "Failed to schedule expiry notification",
                access_key=mask_key(record.access_key),
                error=str(exc),
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._notification_done(record.access_key))

    def _notification_done(self, access_key: str) -> Callable[[asyncio.Task[None]], None]:
        def _done(task: asyncio.Task[None]) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.warning(
                    "Failed to send notification",
                    access_key=mask_key(access_key),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        return _done

    async def drain_notifications(self) -> None:
        """Wait for in-flight notifications (graceful shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _commit(
        self,
        records: list[AccessKeyRecord],
        version: Optional[str],
        message: str,
    ) -> None:
        try:
            await self._store.save(records, version, message)
        except ConcurrencyConflict as exc:
            logger.warning("Key write lost optimistic race", message=message)
            raise WriteConflict() from exc


def _require_text(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not isinstance(value, str) or not value.strip()]
    if missing:
        raise InvalidKeyRequest(f"Missing required fields: {', '.join(missing)}.")
