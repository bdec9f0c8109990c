"""KeyGate exception taxonomy.

Every failure the core can surface derives from KeyGateError. Each class carries
a short machine-readable ``code`` (used in HTTP error bodies and log events)
and a human-readable ``message``.

Recovery rules:
  - BackendUnavailable   — read path: recovered by the ReadCache (stale data);
                           write path: surfaced to the caller (HTTP 503)
  - ConcurrencyConflict  — raised by the backend / KeyStore on a stale version
                           token; translated to WriteConflict by the lifecycle
  - WriteConflict        — lost optimistic race; always surfaced (HTTP 409),
                           never retried automatically
  - KeyNotFound          — target record absent (HTTP 404)
  - MalformedDocument    — recovered locally (treated as an empty collection)
  - InvalidKeyRequest    — bad create input (HTTP 400)
  - RelayError           — messaging relay rejected or failed a delivery
"""

from __future__ import annotations

from typing import Optional


class KeyGateError(Exception):
    """Base class for all KeyGate errors."""

    code: str = "keygate_error"

    def __init__(self, message: str = "KeyGate error") -> None:
        super().__init__(message)
        self.message = message


class BackendUnavailable(KeyGateError):
    """Transport or HTTP failure while talking to the remote document backend."""

    code = "backend_unavailable"

    def __init__(
        self,
        message: str = "Remote document backend unavailable",
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConcurrencyConflict(KeyGateError):
    """The version token presented to a conditional write is stale."""

    code = "concurrency_conflict"

    def __init__(
        self,
        message: str = "Document was modified by another writer",
    ) -> None:
        super().__init__(message)


class WriteConflict(KeyGateError):
    """A lifecycle write lost the optimistic race. Caller may reload and retry."""

    code = "write_conflict"

    def __init__(
        self,
        message: str = (
            "The key store was modified concurrently. "
            "Reload and retry the operation."
        ),
    ) -> None:
        super().__init__(message)


class KeyNotFound(KeyGateError):
    """No record matches the requested access key."""

    code = "key_not_found"

    def __init__(self, message: str = "Key not found.") -> None:
        super().__init__(message)


class MalformedDocument(KeyGateError):
    """Decoded document content is not a well-formed key collection."""

    code = "malformed_document"

    def __init__(self, message: str = "Document is not a valid key collection") -> None:
        super().__init__(message)


class InvalidKeyRequest(KeyGateError, ValueError):
    """Create input is missing or out of range."""

    code = "invalid_request"

    def __init__(self, message: str = "Missing required fields.") -> None:
        super().__init__(message)


class RelayError(KeyGateError):
    """The messaging relay failed to deliver a message.

    ``description`` is the relay's own error text (e.g. Telegram's
    ``"Bad Request: chat not found"``). ``transport`` is True when the request
    never got an API answer (timeout, connection refused).
    """

    code = "relay_error"

    def __init__(self, description: str, transport: bool = False) -> None:
        super().__init__(description)
        self.description = description
        self.transport = transport

    @property
    def is_client_misconfiguration(self) -> bool:
        """True when the failure points at the key owner's bot token / chat id."""
        text = self.description.lower()
        return "chat not found" in text or "bot token" in text
