from __future__ import annotations

import json
import logging

from app.evstock.core.config import settings


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format="%(message)s")


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    """Emit ``payload`` as a single JSON line; non-serialisable values fall back to ``str``."""
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
