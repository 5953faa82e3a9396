"""Structured logging helpers shared across the backend."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

ROOT_LOGGER_NAME = "diary_backend"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the package logger hierarchy."""

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def extract_extra(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class KeyValueFormatter(logging.Formatter):
    """Render ``extra`` fields as ``key=value`` pairs after the event name."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extra = extract_extra(record)
        if not extra:
            return base
        pairs = " ".join(f"{key}={value!r}" for key, value in sorted(extra.items()))
        return f"{base} {pairs}"


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(extract_extra(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(logging_cfg: Mapping[str, Any] | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    logging_cfg = logging_cfg or {}
    level_name = str(logging_cfg.get("level", "INFO")).upper()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.INFO))
    for handler in list(root.handlers):
        if getattr(handler, "_diary_handler", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler._diary_handler = True  # type: ignore[attr-defined]
    if logging_cfg.get("json"):
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            KeyValueFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    root.addHandler(handler)
    return root
