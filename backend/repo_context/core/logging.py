"""Logging utilities for Repo Context."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, MutableMapping

import orjson

_DEFAULT_LEVEL = os.environ.get("RPCX_LOG_LEVEL", "INFO")
_DEFAULT_FORMAT = os.environ.get("RPCX_LOG_FORMAT", "json")
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``ctx_*`` extras are copied into the payload."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        payload.update({key: value for key, value in record.__dict__.items() if key.startswith("ctx_")})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class SourceLogger(logging.LoggerAdapter):
    """Tags every record with the id of the source being processed."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("ctx_source", self.extra["ctx_source"])
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool | None = None) -> None:
    """Send records to stdout, as JSON unless RPCX_LOG_FORMAT=text."""
    if use_json is None:
        use_json = _DEFAULT_FORMAT.lower() != "text"
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(_TEXT_FORMAT))
    root.handlers = [handler]
    # urllib3 logs every connection at debug level
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str = "repo_context") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def source_logger(logger: logging.Logger, source_id: str) -> SourceLogger:
    return SourceLogger(logger, {"ctx_source": source_id})


__all__ = ["JsonFormatter", "SourceLogger", "configure_logging", "get_logger", "source_logger"]
