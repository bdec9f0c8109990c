"""Shared constants for KeyGate.

Numeric defaults used across modules are defined here.
No magic numbers in other modules — import from here.
"""

# ─── Read Cache ───────────────────────────────────────────────────────────────

# Default Read Cache TTL (the ``cacheDurationMs`` option).
# Upper bound on validation-path staleness after a key is created, extended
# or deleted by another process.
DEFAULT_CACHE_DURATION_MS: int = 60_000  # 1 minute

# ─── Key lifecycle ────────────────────────────────────────────────────────────

# Days added by a single extend operation, on top of max(now, expiresAt).
DEFAULT_EXTENSION_DAYS: int = 30

# Upper bound on the duration of a new key (100 years).
MAX_KEY_DURATION_DAYS: int = 36_500

# Prefix of every generated access key.
DEFAULT_ACCESS_KEY_PREFIX: str = "key-"

# Regeneration attempts when a generated key collides with an existing one.
ACCESS_KEY_MAX_ATTEMPTS: int = 5

# ─── Remote document backend ──────────────────────────────────────────────────

DEFAULT_GITHUB_API_URL: str = "https://api.github.com"

# Path of the key collection document inside the repository.
DEFAULT_DOCUMENT_PATH: str = "keys.json"

# Timeout (seconds) for every backend round-trip. No call may block indefinitely.
DEFAULT_BACKEND_TIMEOUT_S: float = 10.0

# ─── Messaging relay ──────────────────────────────────────────────────────────

DEFAULT_TELEGRAM_API_URL: str = "https://api.telegram.org"

DEFAULT_RELAY_TIMEOUT_S: float = 10.0

DEFAULT_RELAY_FOOTER: str = "Sent via KeyGate"

DEFAULT_EXPIRED_MESSAGE: str = "Your key has expired. Buy a new key."

# ─── HTTP shared client ──────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 50
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0
