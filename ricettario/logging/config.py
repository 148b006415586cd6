"""Root logger setup: JSON lines on stderr plus an optional window handler."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Iterable, Optional

from ricettario.lib.redaction import redact

LOG_LEVEL_ENV = "RICETTARIO_LOG_LEVEL"
SENSITIVE_KEYS = frozenset(
    {"password", "pwd", "secret", "token", "api_key", "apikey", "anon_key", "anonkey"}
)
REDACTED_VALUE = "***REDACTED***"
# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def _is_sensitive(key: str) -> bool:
    return key.lower() in SENSITIVE_KEYS


class SensitiveDataFilter(logging.Filter):
    """Blank out secret-looking ``extra`` fields and mapping args."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for key in list(record.__dict__):
            if key not in _RECORD_ATTRS and _is_sensitive(key):
                setattr(record, key, REDACTED_VALUE)
        if isinstance(record.args, dict):
            record.args = {
                key: REDACTED_VALUE if _is_sensitive(str(key)) else value
                for key, value in record.args.items()
            }
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; message, context and traceback are redacted."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        context = {
            key: REDACTED_VALUE if _is_sensitive(key) else self._plain(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = redact(self.formatException(record.exc_info))
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True)

    @staticmethod
    def _plain(value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value
        return redact(str(value))


def level_from_env(default: int = logging.INFO) -> int:
    name = (os.getenv(LOG_LEVEL_ENV) or "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def configure_logging(
    gui_handler_factory: Optional[Callable[[], logging.Handler]] = None,
    *,
    level: Optional[int] = None,
) -> logging.Logger:
    """Configure the root logger. Safe to call again to attach the window handler."""

    root = logging.getLogger()
    root.setLevel(level if level is not None else level_from_env())

    if not _has_console_handler(root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(JsonFormatter())
        console.addFilter(SensitiveDataFilter())
        root.addHandler(console)

    if gui_handler_factory is not None:
        try:
            gui_handler = gui_handler_factory()
        except Exception:  # pragma: no cover - window may be gone already
            logging.getLogger(__name__).warning("GUI log handler unavailable", exc_info=True)
        else:
            gui_handler.addFilter(SensitiveDataFilter())
            root.addHandler(gui_handler)

    return root


def _has_console_handler(handlers: Iterable[logging.Handler]) -> bool:
    return any(type(handler) is logging.StreamHandler for handler in handlers)


__all__ = [
    "JsonFormatter",
    "SensitiveDataFilter",
    "configure_logging",
    "level_from_env",
    "REDACTED_VALUE",
    "SENSITIVE_KEYS",
]
