"""Static configuration for kudosbot.

Secrets and deployment settings come from the environment (a local .env file
is loaded via python-dotenv). Optional tuning for logging and the leaderboard
lives in config.json so it can be edited without touching Python.
"""

import json
import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json is optional; every key has a default below.
CONFIG_PATH = os.getenv("KUDOS_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json if present."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _parse_port(raw: str, default: int = 8080) -> int:
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid server port %s, using default %s", raw, default)
        return default


def _parse_seconds(raw: str, default: float = 5.0) -> float:
    if not raw:
        return default
    try:
        value: Optional[float] = float(raw)
    except ValueError:
        value = None
    if value is None or value < 0:
        logging.getLogger(__name__).warning("Invalid shutdown grace period %s, using default %s", raw, default)
        return default
    return value


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"true", "1", "yes"}


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database.
DB_PATH = os.getenv("KUDOS_SQLITE_FILENAME") or "kudos.db"

# OAuth app credentials (required).
SLACK_CLIENT_ID = os.getenv("KUDOS_SLACK_CLIENT_ID", "")
SLACK_CLIENT_SECRET = os.getenv("KUDOS_SLACK_CLIENT_SECRET", "")
# App-level token for Socket Mode, shared by every workspace (required).
SLACK_APP_TOKEN = os.getenv("KUDOS_SLACK_APP_TOKEN", "")

# Base URL where the install server is reachable; the redirect URI is derived
# from it unless set explicitly.
BASE_URL = (os.getenv("KUDOS_BASE_URL") or "http://localhost:8080").rstrip("/")
SLACK_REDIRECT_URI = os.getenv("KUDOS_SLACK_REDIRECT_URI") or f"{BASE_URL}/oauth/callback"

SERVER_PORT = _parse_port(os.getenv("KUDOS_SERVER_PORT", ""))
DEBUG = _parse_bool(os.getenv("KUDOS_DEBUG", ""))

# Seconds in-flight handlers get to finish after the listener is closed.
SHUTDOWN_GRACE_SECONDS = _parse_seconds(os.getenv("KUDOS_SHUTDOWN_GRACE_SECONDS", ""))

# Leaderboard defaults for the /kudos command.
_kudos = _CONFIG.get("kudos", {})
DEFAULT_TOP_COUNT = int(_kudos.get("default_top_count", 5))
MAX_TOP_COUNT = int(_kudos.get("max_top_count", 50))

# Logging configuration; console logging is on unless disabled.
LOGGING = _CONFIG.get(
    "logging",
    {
        "enabled": True,
        "level": "INFO",
        "redact": {
            "enabled": True,
            "patterns": ["KUDOS_SLACK_CLIENT_SECRET", "KUDOS_SLACK_APP_TOKEN"],
        },
    },
)

REQUIRED_VARIABLES = {
    "KUDOS_SLACK_CLIENT_ID": SLACK_CLIENT_ID,
    "KUDOS_SLACK_CLIENT_SECRET": SLACK_CLIENT_SECRET,
    "KUDOS_SLACK_APP_TOKEN": SLACK_APP_TOKEN,
}


def missing_required() -> list[str]:
    """Return the names of required environment variables that are unset."""

    return [name for name, value in REQUIRED_VARIABLES.items() if not value]
