from __future__ import annotations

import logging
from typing import Any

import orjson

from tague_api.core.config import Settings

LOGGER_NAME = "tague_api"

logger = logging.getLogger(LOGGER_NAME)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "event": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)[-2000:]
        try:
            return orjson.dumps(payload, default=str).decode("utf-8")
        except Exception:  # noqa: BLE001
            return str(payload)


class _PlainFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict) and fields:
            kv = " ".join(f"{k}={v}" for k, v in fields.items())
            return f"{base} {kv}"
        return base


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    handler = logging.StreamHandler()
    if settings.log_json:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            _PlainFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logger.handlers = [handler]
    logger.setLevel(settings.log_level)


def log_event(level: int, event: str, **fields: Any) -> None:
    logger.log(level, event, extra={"fields": fields})
