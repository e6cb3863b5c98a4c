"""
utils/loggers.py

Application loggers plus a JSON-lines event logger for refund / exchange
telemetry.

Public API
----------
- get_logger(name) -> logging.Logger
- get_event_logger(name, file_path, level) -> logging.Logger
- log_event(logger, op, phase, message, extra: dict = {})
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..config import EVENT_LOG_PATH

__all__ = ["get_logger", "get_event_logger", "log_event"]

EVENT_LOGGER_NAME = "retail_pos.events"


def get_logger(name="retail_pos"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2026-01-05T12:00:01.123Z","level":"INFO","name":"retail_pos.refunds","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_event_logger(
    name: str = EVENT_LOGGER_NAME,
    file_path: Optional[str | Path] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Return a logger whose handlers write JSON lines, so the payload passed to
    log_event() is kept. Reuses the same logger (no duplicate handlers).

    With a file path (argument or RETAIL_POS_EVENT_LOG) events are appended
    there and WARNING+ is mirrored to stderr; without one they go to stderr.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    target = file_path or EVENT_LOG_PATH
    if target:
        log_file = Path(target)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
        fh.setLevel(level)
        fh.setFormatter(JsonLineFormatter())
        logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setLevel(logging.WARNING if target else level)
    sh.setFormatter(JsonLineFormatter())
    logger.addHandler(sh)
    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Usually get_event_logger(); any logger works, the payload
            only survives a handler formatted by JsonLineFormatter.
        op: Operation name, e.g. "refund" or "exchange".
        phase: Phase within the operation: "validate", "mutate", "commit" or "reject".
        message: Human-readable short message.
        extra: Optional key/values (sale id, refund id, amounts).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
