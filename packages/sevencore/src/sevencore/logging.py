"""
Logging setup shared by every SEVEN T service.

Console logging always, optional file logging, and a filter that redacts
credentials before records reach any handler.
"""

import logging
import re
import sys
from pathlib import Path

from sevencore.settings import get_settings

_SENSITIVE_PATTERN = re.compile(
    r"(password|passwd|secret|token|api_key|apikey|authorization)\s*[=:]\s*\S+",
    re.IGNORECASE,
)

_configured = False


class SensitiveDataFilter(logging.Filter):
    """Redacts credentials from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _SENSITIVE_PATTERN.sub(
                lambda m: re.split(r"\s*[=:]", m.group(), maxsplit=1)[0] + "=***REDACTED***",
                record.msg,
            )
        return True


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger.

    Idempotent: services call this at import time and tests may import
    several of them.
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    sensitive_filter = SensitiveDataFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level_name, logging.INFO))
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info(f"Logging configured: level={level_name}")
