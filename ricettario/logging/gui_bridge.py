"""Bridge between the logging tree and the in-window activity log."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from ricettario.lib.redaction import redact

LEVEL_NAMES: Mapping[int, str] = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "critical",
}

GuiEmitter = Callable[["GuiLogRecord"], None]


@dataclass(slots=True, frozen=True)
class GuiLogRecord:
    message: str
    level: str
    timestamp: str
    logger: str
    operation: str = ""

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "GuiLogRecord":
        # Levels between the named ones round down (e.g. 25 -> info).
        level = "debug"
        for number in sorted(LEVEL_NAMES):
            if record.levelno >= number:
                level = LEVEL_NAMES[number]
        return cls(
            message=redact(record.getMessage()),
            level=level,
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            logger=record.name,
            operation=str(getattr(record, "operation", "") or ""),
        )

    @property
    def clock_time(self) -> str:
        return self.timestamp[11:19] if len(self.timestamp) >= 19 else self.timestamp


class QtSignalHandler(logging.Handler):
    """Hand records to the window; the emitter is responsible for thread hops."""

    def __init__(self, emitter: GuiEmitter) -> None:
        super().__init__()
        self._emitter = emitter

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self._emitter(GuiLogRecord.from_record(record))
        except Exception:  # pragma: no cover - emitter owned by the window
            self.handleError(record)


def build_gui_handler(emitter: GuiEmitter, *, level: int = logging.INFO) -> QtSignalHandler:
    handler = QtSignalHandler(emitter)
    handler.setLevel(level)
    return handler


__all__ = ["GuiLogRecord", "QtSignalHandler", "build_gui_handler", "LEVEL_NAMES"]
