"""One-JSON-object-per-line logging for the portal API."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var
from .config import settings

# RequestIdMiddleware already logs each request, so uvicorn's access log is redundant.
_SILENCED = {"uvicorn.access": logging.WARNING, "httpx": logging.WARNING}


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str | None = None, environment: str | None = None) -> None:
        super().__init__()
        self.service = service or settings.APP_NAME
        self.environment = environment or settings.APP_ENV

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "env": self.environment,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, var in (("request_id", request_id_ctx_var), ("principal", principal_ctx_var)):
            value = var.get()
            if value:
                payload[key] = value
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            # Reserved keys win over event fields of the same name.
            payload.update({k: v for k, v in extra.items() if k not in ("timestamp", "level", "logger", "message")})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel((level or settings.LOG_LEVEL).upper())
    for name, floor in _SILENCED.items():
        logging.getLogger(name).setLevel(floor)
