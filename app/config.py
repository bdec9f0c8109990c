"""Config loading for KeyGate.

Reads `.keygate/config.yaml` (or `~/.keygate/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. KEYGATE_CONFIG environment variable (if set)
  3. `.keygate/config.yaml` (working directory — for development)
  4. `~/.keygate/config.yaml` (home directory — for production deployments)

Secrets are NEVER read from the config file, only from the environment:
  GITHUB_TOKEN — token for the GitHub Contents API (store.token)
  PANEL_USER   — panel login username (panel.username)
  PANEL_PASS   — panel login password, plaintext or bcrypt hash (panel.password)

Environment variable overrides:
  KEYGATE_PORT              — overrides server.port
  KEYGATE_CACHE_DURATION_MS — overrides cache.cacheDurationMs
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from app.constants import (
    DEFAULT_ACCESS_KEY_PREFIX,
    DEFAULT_BACKEND_TIMEOUT_S,
    DEFAULT_CACHE_DURATION_MS,
    DEFAULT_DOCUMENT_PATH,
    DEFAULT_EXPIRED_MESSAGE,
    DEFAULT_EXTENSION_DAYS,
    DEFAULT_GITHUB_API_URL,
    DEFAULT_RELAY_FOOTER,
    DEFAULT_RELAY_TIMEOUT_S,
    DEFAULT_TELEGRAM_API_URL,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_STORE_BACKENDS: frozenset[str] = frozenset({"github", "memory"})

DEFAULT_CONFIG_PATHS = [
    ".keygate/config.yaml",
    os.path.expanduser("~/.keygate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class StoreConfig:
    """Remote document backend configuration.

    backend: "github" (GitHub Contents API) | "memory" (process-local, dev only)
    token:   populated from GITHUB_TOKEN — never from the file
    """

    backend: str = "github"
    owner: Optional[str] = None
    repo: Optional[str] = None
    path: str = DEFAULT_DOCUMENT_PATH
    branch: Optional[str] = None
    api_url: str = DEFAULT_GITHUB_API_URL
    timeout_s: float = DEFAULT_BACKEND_TIMEOUT_S
    token: Optional[str] = field(default=None, repr=False)


@dataclass
class CacheConfig:
    """Read Cache configuration (YAML key: ``cacheDurationMs``)."""

    cache_duration_ms: int = DEFAULT_CACHE_DURATION_MS


@dataclass
class KeysConfig:
    extension_days: int = DEFAULT_EXTENSION_DAYS
    access_key_prefix: str = DEFAULT_ACCESS_KEY_PREFIX


@dataclass
class RelayConfig:
    """Messaging relay (Telegram Bot API) configuration."""

    api_url: str = DEFAULT_TELEGRAM_API_URL
    timeout_s: float = DEFAULT_RELAY_TIMEOUT_S
    footer: str = DEFAULT_RELAY_FOOTER
    expired_message: str = DEFAULT_EXPIRED_MESSAGE


@dataclass
class PanelConfig:
    """Panel login credentials — populated from PANEL_USER / PANEL_PASS only."""

    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    """Root configuration object populated from .keygate/config.yaml.

    All fields have safe defaults — KeyGate can start without any config file
    (with ``store.backend: memory`` or GITHUB_TOKEN + owner/repo supplied).
    """

    version: int = SUPPORTED_CONFIG_VERSION
    store: StoreConfig = field(default_factory=StoreConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    keys: KeysConfig = field(default_factory=KeysConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    panel: PanelConfig = field(default_factory=PanelConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid store.backend or a non-positive
                           numeric setting.
        """
        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store") or {}
        backend = store_raw.get("backend", "github")
        if backend not in VALID_STORE_BACKENDS:
            _config_error(
                f"Invalid store.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
            )
        store = StoreConfig(
            backend=backend,
            owner=store_raw.get("owner"),
            repo=store_raw.get("repo"),
            path=store_raw.get("path", DEFAULT_DOCUMENT_PATH),
            branch=store_raw.get("branch"),
            api_url=store_raw.get("api_url", DEFAULT_GITHUB_API_URL),
            timeout_s=_positive(store_raw, "timeout_s", DEFAULT_BACKEND_TIMEOUT_S, "store"),
        )

        # ── Cache ─────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache") or {}
        cache = CacheConfig(
            cache_duration_ms=int(
                _positive(cache_raw, "cacheDurationMs", DEFAULT_CACHE_DURATION_MS, "cache")
            ),
        )

        # ── Keys ──────────────────────────────────────────────────────────────
        keys_raw = raw.get("keys") or {}
        keys = KeysConfig(
            extension_days=int(
                _positive(keys_raw, "extension_days", DEFAULT_EXTENSION_DAYS, "keys")
            ),
            access_key_prefix=keys_raw.get("access_key_prefix", DEFAULT_ACCESS_KEY_PREFIX),
        )

        # ── Relay ─────────────────────────────────────────────────────────────
        relay_raw = raw.get("relay") or {}
        relay = RelayConfig(
            api_url=relay_raw.get("api_url", DEFAULT_TELEGRAM_API_URL),
            timeout_s=_positive(relay_raw, "timeout_s", DEFAULT_RELAY_TIMEOUT_S, "relay"),
            footer=relay_raw.get("footer", DEFAULT_RELAY_FOOTER),
            expired_message=relay_raw.get("expired_message", DEFAULT_EXPIRED_MESSAGE),
        )

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8080),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            store=store,
            cache=cache,
            keys=keys,
            relay=relay,
            server=server,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate KeyGate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides and secrets are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid ``store.backend``, or an invalid
                       numeric environment override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("KEYGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "KeyGate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "KeyGate is configured to bind on 0.0.0.0 (all interfaces). "
            "Put it behind a TLS-terminating proxy — panel credentials travel "
            "in HTTP Basic headers."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        store_backend=config.store.backend,
        cache_duration_ms=config.cache.cache_duration_ms,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply secrets and environment variable overrides to a Config in-place.

    Raises:
        SystemExit(1): If KEYGATE_PORT or KEYGATE_CACHE_DURATION_MS is set
                       but not a valid integer.
    """
    config.store.token = os.environ.get("GITHUB_TOKEN") or None
    config.panel.username = os.environ.get("PANEL_USER") or None
    config.panel.password = os.environ.get("PANEL_PASS") or None

    env_port = os.environ.get("KEYGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"KEYGATE_PORT environment variable is not a valid integer: '{env_port}'"
            )

    env_ttl = os.environ.get("KEYGATE_CACHE_DURATION_MS")
    if env_ttl is not None:
        try:
            ttl = int(env_ttl)
        except ValueError:
            ttl = -1
        if ttl <= 0:
            _config_error(
                "KEYGATE_CACHE_DURATION_MS environment variable is not a "
                f"positive integer: '{env_ttl}'"
            )
        config.cache.cache_duration_ms = ttl


def _positive(section: dict, key: str, default: float, section_name: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        _config_error(f"Invalid {section_name}.{key}: {value!r}. Must be a positive number.")
    return value


def _config_error(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)
