"""
Application settings.

Values come from environment variables (a local ``.env`` file is loaded
first) with an optional YAML file for nested defaults. Environment variables
always win over the YAML file.

YAML layout (all keys optional)::

    storage:
      root: ./nas-storage
      recent_limit: 20
      chunk_size: 1048576
    server:
      port: 4000
      frontend_url: http://localhost:3000
    logging:
      level: INFO
      dir: ./logs
      json: false
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_STORAGE_ROOT = "./nas-storage"


def _config_path() -> Path:
    return Path(os.getenv("CONFIG_FILE", "config.yaml"))


@lru_cache(maxsize=1)
def load_config_file() -> dict[str, Any]:
    """Load the YAML config file, or an empty dict if there is none."""
    path = _config_path()
    if not path.is_file():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.info(f"Loaded config file {path}")
    return data


def get_nested_config(key: str, default: Any = None) -> Any:
    """Look up a dotted key (e.g. ``"storage.root"``) in the YAML config."""
    node: Any = load_config_file()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _env_or_config(env_name: str, key: str, default: Any) -> Any:
    value = os.getenv(env_name)
    if value not in (None, ""):
        return value
    return get_nested_config(key, default)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def get_storage_root() -> str:
    return str(_env_or_config("ROOT_PATH", "storage.root", DEFAULT_STORAGE_ROOT))


def get_recent_limit() -> int:
    return int(_env_or_config("RECENT_LIMIT", "storage.recent_limit", 20))


def get_chunk_size() -> int:
    return int(_env_or_config("CHUNK_SIZE", "storage.chunk_size", 1024 * 1024))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


def get_port() -> int:
    return int(_env_or_config("PORT", "server.port", 4000))


def get_frontend_url() -> str:
    return str(_env_or_config("FRONTEND_URL", "server.frontend_url", "http://localhost:3000"))


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

# Auth is bypassed entirely when no signing secret is configured.
JWT_SECRET = os.getenv("JWT_SECRET", "")
AUTH_ENABLED = bool(JWT_SECRET)
LOCAL_DEV_USER_ID = os.getenv("AUTH_USER_ID", "local-dev-user")


def get_admin_emails() -> frozenset[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def get_log_level() -> str:
    return str(_env_or_config("LOG_LEVEL", "logging.level", "INFO")).upper()


def get_log_dir() -> str | None:
    value = _env_or_config("LOG_DIR", "logging.dir", None)
    return str(value) if value else None


def is_json_logging_enabled() -> bool:
    return _as_bool(_env_or_config("LOG_JSON", "logging.json", False))
