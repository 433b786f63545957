"""trendpilot.logging

Structured logging helpers (structlog).

Modules obtain a logger with `get_logger(__name__)` and log event names with
keyword context:

    logger.info("node_completed", thread_id=thread_id, node="search")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

_CONFIGURED = False


def _env_flag(name: str) -> bool:
    return str(os.getenv(name, "")).strip().lower() in ("1", "true", "yes", "on")


def configure_logging(level: Optional[str] = None, *, json: Optional[bool] = None) -> None:
    """Configure structlog + stdlib logging once per process.

    Defaults come from `TRENDPILOT_LOG_LEVEL` (INFO) and `TRENDPILOT_LOG_JSON`.
    """
    global _CONFIGURED
    if _CONFIGURED and level is None and json is None:
        return

    level_name = (level or os.getenv("TRENDPILOT_LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    use_json = _env_flag("TRENDPILOT_LOG_JSON") if json is None else bool(json)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    renderer: Any = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
