"""Logging configuration for crawl and extraction runs."""

import logging
import re
import sys
from pathlib import Path
from typing import Iterable, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that log request-level detail at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "asyncio")

_SECRET_PATTERN = re.compile(r"(?i)\b(password|passwd|pw|api_key|apikey|token)(\s*[=:]\s*)(['\"]?)[^\s,'\"}]+")


class SecretMaskingFilter(logging.Filter):
    """Masks credential-looking key=value pairs in rendered log messages."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def mask(self, text: str) -> str:
        text = _SECRET_PATTERN.sub(r"\1\2\3***", text)
        for secret in self.secrets:
            text = text.replace(secret, "***")
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    secrets: Iterable[str] = (),
) -> None:
    """Configure root logging for a crawl worker.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional log file path, parent directories are created
        format_string: Optional custom format string
        secrets: Literal values (API keys) to mask wherever they appear
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    masking = SecretMaskingFilter(secrets)
    for handler in handlers:
        handler.addFilter(masking)

    logging.basicConfig(
        level=numeric_level,
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings_obj) -> None:
    """Configure logging from a Settings object (LOG_LEVEL, LOG_FILE, LLM_API_KEY)."""
    setup_logging(
        level=settings_obj.LOG_LEVEL,
        log_file=getattr(settings_obj, "LOG_FILE", None),
        secrets=[getattr(settings_obj, "LLM_API_KEY", None) or ""],
    )
