"""Default config generation, loading, and environment overrides.

Stored in ``.tripsync/config.json``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TypedDict

from tripsync.core.ids import generate_client_id

CONFIG_FILENAME = "config.json"

ACTOR_ENV = "TRIPSYNC_ACTOR"
URL_ENV = "TRIPSYNC_URL"

DEFAULT_RELAY_HOST = "127.0.0.1"
DEFAULT_RELAY_PORT = 9810

# Longer than realistic notification latency, short enough that a
# legitimate same-account edit from another session is not hidden for long.
DEFAULT_ECHO_WINDOW_SECONDS = 15.0
# Memory bound for the recent-operation index.
DEFAULT_RETENTION_SECONDS = 600.0
DEFAULT_SETTLE_GRACE_SECONDS = 3.0


class ConfigError(Exception):
    """Raised when a config file cannot be read or parsed."""


class RelayConfig(TypedDict, total=False):
    host: str
    port: int


class SyncConfig(TypedDict, total=False):
    schema_version: int
    client_id: str
    actor_id: str
    backend_url: str
    echo_window_seconds: float
    retention_seconds: float
    settle_grace_seconds: float
    relay: RelayConfig


def default_config() -> SyncConfig:
    """Return the default client configuration.

    ``actor_id`` is left empty; it is normally supplied by ``tripsync init
    --actor`` or the TRIPSYNC_ACTOR environment variable.
    """
    return {
        "schema_version": 1,
        "client_id": generate_client_id(),
        "actor_id": "",
        "backend_url": f"ws://{DEFAULT_RELAY_HOST}:{DEFAULT_RELAY_PORT}",
        "echo_window_seconds": DEFAULT_ECHO_WINDOW_SECONDS,
        "retention_seconds": DEFAULT_RETENTION_SECONDS,
        "settle_grace_seconds": DEFAULT_SETTLE_GRACE_SECONDS,
        "relay": {
            "host": DEFAULT_RELAY_HOST,
            "port": DEFAULT_RELAY_PORT,
        },
    }


def serialize_config(config: SyncConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> dict:
    """Parse a JSON config string and merge it over the defaults.

    This is a pure function (no I/O).  Unknown keys are preserved.

    Raises:
        ConfigError: If *raw* is not a JSON object.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid config JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config must be a JSON object")

    config: dict = dict(default_config())
    relay = dict(config["relay"])
    relay.update(data.get("relay") or {})
    config.update(data)
    config["relay"] = relay
    return config


def apply_env_overrides(config: dict, environ: dict[str, str] | None = None) -> dict:
    """Return a copy of *config* with TRIPSYNC_ACTOR / TRIPSYNC_URL applied."""
    env = os.environ if environ is None else environ
    result = dict(config)
    actor = env.get(ACTOR_ENV)
    if actor:
        result["actor_id"] = actor
    url = env.get(URL_ENV)
    if url:
        result["backend_url"] = url
    return result


def load_sync_config(tripsync_dir: Path | None) -> dict:
    """Load ``config.json`` from *tripsync_dir*, falling back to defaults.

    Environment overrides are applied last.
    """
    config: dict = dict(default_config())
    if tripsync_dir is not None:
        config_path = tripsync_dir / CONFIG_FILENAME
        if config_path.exists():
            try:
                raw = config_path.read_text()
            except OSError as exc:
                raise ConfigError(f"Cannot read {config_path}: {exc}") from exc
            config = load_config(raw)
    return apply_env_overrides(config)


def save_sync_config(tripsync_dir: Path, config: SyncConfig | dict) -> None:
    """Save configuration to ``config.json`` atomically."""
    from tripsync.storage.fs import atomic_write

    tripsync_dir.mkdir(parents=True, exist_ok=True)
    atomic_write(tripsync_dir / CONFIG_FILENAME, serialize_config(config))
