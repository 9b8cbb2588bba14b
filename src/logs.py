"""Logging setup for kudosbot.

Console output plus an optional size-rotating file, both passed through a
formatter that masks secrets. Secrets come from two places: environment
variables named in the ``redact`` config section at startup, and workspace
bot tokens registered with :func:`redact` as they are loaded or installed.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_PATH = "logs/kudosbot.log"

# Third-party loggers that are too chatty at INFO.
_NOISY_LOGGERS = ("slack_sdk", "aiohttp.access")

_formatters: list["RedactingFormatter"] = []


class RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: Iterable[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets: list[str] = []
        for secret in secrets:
            self.add_secret(secret)

    def add_secret(self, secret: str) -> None:
        if not secret or secret in self._secrets:
            return
        self._secrets.append(secret)
        # Longest first so a secret containing another is masked whole.
        self._secrets.sort(key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def redaction_values(config: dict) -> list[str]:
    """Resolve the environment variables listed under ``redact.patterns``."""

    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    return [value for value in (os.getenv(name) for name in redact_cfg.get("patterns", [])) if value]


def redact(secret: str) -> None:
    """Mask ``secret`` in every record formatted from now on."""

    for formatter in _formatters:
        formatter.add_secret(secret)


def mask_token(token: str) -> str:
    if len(token) <= 15:
        return "***"
    return f"{token[:10]}...{token[-5:]}"


def _file_handler(file_cfg: dict, project_root: str) -> RotatingFileHandler:
    path = file_cfg.get("path", DEFAULT_LOG_PATH)
    if not os.path.isabs(path):
        path = os.path.join(project_root, path)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def configure_logging(config: dict, debug: bool = False, project_root: str = ".") -> Optional[RedactingFormatter]:
    """Install handlers from the ``logging`` config section.

    Returns the formatter in use, or None when logging is disabled.
    """

    if not config or not config.get("enabled", False):
        return None

    level_name = "DEBUG" if debug else str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = RedactingFormatter(redaction_values(config), fmt=FORMAT, datefmt=DATEFMT)

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg, project_root))
    if not handlers:
        return None

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    _formatters.append(formatter)
    return formatter
