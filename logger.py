from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar
from logging import Filter
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

from rich.console import Console
from rich.logging import RichHandler


_REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)
_USER_ID: ContextVar[int | str | None] = ContextVar("user_id", default=None)

_CONTEXT_KEYS = ("request_id", "user_id", "stage", "payload")
_SHORT_NAMES = {"request_id": "rid"}


class _ContextLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges contextvars with per-call extras."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra: Dict[str, Any] = dict(kwargs.get("extra") or {})
        extra.setdefault("module_name", self.extra.get("module_name") or self.logger.name)

        for key in _CONTEXT_KEYS:
            value = kwargs.pop(key, None) or extra.pop(key, None)
            if value is None and key == "request_id":
                value = _REQUEST_ID.get()
            if value is None and key == "user_id":
                value = _USER_ID.get()
            if value is not None:
                extra[key] = value

        kwargs["extra"] = extra
        return msg, kwargs


class _CompactFormatter(logging.Formatter):
    """One line per record: time, level, module, message and bound context."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        module_name = getattr(record, "module_name", record.name)

        context_parts: list[str] = []
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if not value:
                continue
            if key == "payload":
                rendered = _stringify_payload(value)
                if rendered:
                    context_parts.append(rendered)
            else:
                context_parts.append(f"{_SHORT_NAMES.get(key, key)}={value}")
        suffix = f" ({', '.join(context_parts)})" if context_parts else ""

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        timestamp = self.formatTime(record, self.datefmt)
        return f"[{timestamp}] [{record.levelname}] [{module_name}] {message}{suffix}"


def _stringify_payload(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True)
    except TypeError:
        return str(payload)


class _DomainInfoFilter(Filter):
    """Allow INFO records only when marked as domain milestones."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - standard interface
        if record.levelno != logging.INFO:
            return True
        return bool(getattr(record, "domain", False))


def setup_logging() -> logging.Logger:
    """Configure logging once for the entire application.

    ``LOG_LEVEL`` sets the root level, ``LOG_NOISE=debug`` lets every INFO
    record reach the console and ``LOG_DIR`` moves the rotating file.
    """

    root = logging.getLogger()
    if getattr(root, "_subtrack_configured", False):
        return root

    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))

    console_handler = RichHandler(
        console=Console(),
        rich_tracebacks=True,
        show_time=False,
        show_level=False,
        show_path=False,
    )
    console_handler.setFormatter(_CompactFormatter(datefmt="%H:%M:%S"))
    if (os.getenv("LOG_NOISE", "low").strip().lower() or "low") != "debug":
        console_handler.addFilter(_DomainInfoFilter())

    logs_dir = Path(os.getenv("LOG_DIR") or Path(__file__).resolve().parent / "logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        logs_dir / "auth.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(_CompactFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(console_handler)
    root.addHandler(file_handler)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root._subtrack_configured = True  # type: ignore[attr-defined]
    return root


def get_logger(name: str) -> logging.LoggerAdapter:
    return _ContextLoggerAdapter(logging.getLogger(name), {"module_name": name})


def info_domain(
    module: str,
    message: str,
    *,
    stage: str | None = None,
    user_id: int | str | None = None,
    **context: Any,
) -> None:
    """Log a milestone INFO message visible in console output."""

    extra: Dict[str, Any] = {"domain": True}
    if context:
        extra["payload"] = context
    get_logger(module).info(message, extra=extra, stage=stage, user_id=user_id)


def log_event(
    level: str | int,
    module: str,
    message: str,
    *,
    user_id: int | str | None = None,
    stage: str | None = None,
    extra: Mapping[str, Any] | None = None,
    exc_info: Any | None = None,
) -> None:
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    get_logger(module).log(
        int(level),
        message,
        exc_info=exc_info,
        extra={"payload": dict(extra)} if extra else None,
        stage=stage,
        user_id=user_id,
    )


def bind_context(*, request_id: str | None = None, user_id: int | str | None = None) -> Dict[str, Any]:
    tokens: Dict[str, Any] = {}
    if request_id is not None:
        tokens["request_id"] = _REQUEST_ID.set(request_id)
    if user_id is not None:
        tokens["user_id"] = _USER_ID.set(user_id)
    return tokens


def reset_context(tokens: Mapping[str, Any]) -> None:
    if "user_id" in tokens:
        _USER_ID.reset(tokens["user_id"])
    if "request_id" in tokens:
        _REQUEST_ID.reset(tokens["request_id"])


def current_request_id() -> str | None:
    return _REQUEST_ID.get()


__all__ = [
    "setup_logging",
    "get_logger",
    "info_domain",
    "log_event",
    "bind_context",
    "reset_context",
    "current_request_id",
]
