"""ULID-based identifiers for KeyGate.

Access keys are ``<prefix><ulid>`` where the ULID is lower-cased, e.g.
``key-01hzx3k8w2m6a9q4t7c5e1n0bv``. The 48-bit millisecond timestamp keeps keys
roughly time-ordered in the panel; the 80-bit random component makes
collisions practically impossible. The lifecycle manager still checks each
fresh key against the loaded collection before committing.

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from typing import Container

from ulid import ULID

from app.constants import ACCESS_KEY_MAX_ATTEMPTS, DEFAULT_ACCESS_KEY_PREFIX


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string."""
    return str(ULID())


def generate_access_key(
    existing: Container[str] = (),
    prefix: str = DEFAULT_ACCESS_KEY_PREFIX,
    max_attempts: int = ACCESS_KEY_MAX_ATTEMPTS,
) -> str:
    """Generate an access key not present in ``existing``.

    Args:
        existing:     Access keys already in the collection.
        prefix:       Key prefix (default ``"key-"``).
        max_attempts: Regeneration attempts before giving up.

    Returns:
        A fresh access key string.

    Raises:
        RuntimeError: If every attempt collided (indicates a broken generator).
    """
    for _ in range(max_attempts):
        candidate = f"{prefix}{generate_ulid().lower()}"
        if candidate not in existing:
            return candidate
    raise RuntimeError(
        f"Could not generate a unique access key after {max_attempts} attempts"
    )
