"""
Configuration loading for the MCP MongoDB server.

Values come from the process environment (optionally seeded from a ``.env``
file) and may be overridden from the command line.
"""
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigurationError

# --- Defaults ---
DEFAULT_MONGODB_URI = "mongodb://localhost:27017/mcp-mongo"
DEFAULT_DATABASE_NAME = "mcp-mongo"
DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000
DEFAULT_HEARTBEAT_FREQUENCY_MS = 2000
DEFAULT_SHUTDOWN_DRAIN_TIMEOUT = 5.0
DEFAULT_LOG_LEVEL = "INFO"

URI_SCHEMES = ("mongodb://", "mongodb+srv://")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the server."""
    mongodb_uri: str = DEFAULT_MONGODB_URI
    server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS
    heartbeat_frequency_ms: int = DEFAULT_HEARTBEAT_FREQUENCY_MS
    shutdown_drain_timeout: float = DEFAULT_SHUTDOWN_DRAIN_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def database_name(self) -> str:
        """Database named in the URI path, or the default one."""
        path = urlparse(self.mongodb_uri).path.lstrip("/")
        return path or DEFAULT_DATABASE_NAME


def _read_number(env: Dict[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def validate_uri(uri: str) -> None:
    """
    Validate the MongoDB connection string.

    Raises:
        ConfigurationError: If the URI is empty or has an unsupported scheme
    """
    if not uri:
        raise ConfigurationError("MongoDB URI is required")
    if not uri.startswith(URI_SCHEMES):
        raise ConfigurationError(
            "Invalid MongoDB URI format. Must start with mongodb:// or mongodb+srv://"
        )


def load_settings(
    overrides: Optional[Dict[str, Any]] = None,
    env: Optional[Dict[str, str]] = None,
    use_dotenv: bool = True,
) -> Settings:
    """
    Build settings from the environment and explicit overrides.

    Args:
        overrides: Non-None values replace whatever the environment says
        env: Mapping to read instead of ``os.environ`` (used by tests)
        use_dotenv: Load a ``.env`` file into the environment first

    Returns:
        The validated settings
    """
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = dict(os.environ)

    settings = Settings(
        mongodb_uri=env.get("MONGODB_URI") or DEFAULT_MONGODB_URI,
        server_selection_timeout_ms=_read_number(
            env, "MONGODB_SERVER_SELECTION_TIMEOUT_MS", DEFAULT_SERVER_SELECTION_TIMEOUT_MS, int
        ),
        heartbeat_frequency_ms=_read_number(
            env, "MONGODB_HEARTBEAT_FREQUENCY_MS", DEFAULT_HEARTBEAT_FREQUENCY_MS, int
        ),
        shutdown_drain_timeout=_read_number(
            env, "MCP_SHUTDOWN_DRAIN_TIMEOUT", DEFAULT_SHUTDOWN_DRAIN_TIMEOUT, float
        ),
        log_level=(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )

    if overrides:
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    validate_uri(settings.mongodb_uri)
    return settings
