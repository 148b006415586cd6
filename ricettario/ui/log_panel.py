from __future__ import annotations

from PySide6 import QtCore, QtGui, QtWidgets

from ricettario.logging.gui_bridge import GuiLogRecord

LEVEL_ORDER = ("debug", "info", "warning", "error", "critical")
LEVEL_TEXT_COLOR = {
    "debug": "#6b6b6b",
    "info": "#1f3a5f",
    "warning": "#8a6d00",
    "error": "#a11d1d",
    "critical": "#a11d1d",
}


class LogPanel(QtWidgets.QWidget):
    """Activity log under the recipe list.

    ``sink`` may be called from worker threads; records are appended on the
    UI thread through a queued signal.
    """

    MAX_ITEMS = 500
    record_received = QtCore.Signal(object)

    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self._minimum_level = "info"
        self._list = QtWidgets.QListWidget(self)
        self._list.setSelectionMode(QtWidgets.QAbstractItemView.NoSelection)
        self._list.setFocusPolicy(QtCore.Qt.NoFocus)
        self._list.setUniformItemSizes(True)
        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._list)
        self.record_received.connect(self.append_record, QtCore.Qt.QueuedConnection)

    def sink(self, record: GuiLogRecord) -> None:
        self.record_received.emit(record)

    def set_minimum_level(self, level: str) -> None:
        if level not in LEVEL_ORDER:
            raise ValueError(f"Unknown log level '{level}'")
        self._minimum_level = level

    @QtCore.Slot(object)
    def append_record(self, record: GuiLogRecord) -> None:
        if LEVEL_ORDER.index(record.level) < LEVEL_ORDER.index(self._minimum_level):
            return
        tag = f" [{record.operation}]" if record.operation else ""
        item = QtWidgets.QListWidgetItem(f"{record.clock_time} {record.level.upper():<8}{tag} {record.message}")
        item.setToolTip(f"{record.timestamp}  {record.logger}")
        item.setForeground(QtGui.QColor(LEVEL_TEXT_COLOR.get(record.level, "#000000")))
        if record.level in ("error", "critical"):
            font = item.font()
            font.setBold(True)
            item.setFont(font)
        self._list.addItem(item)
        while self._list.count() > self.MAX_ITEMS:
            self._list.takeItem(0)
        self._list.scrollToBottom()

    def messages(self) -> list[str]:
        return [self._list.item(row).text() for row in range(self._list.count())]

    def clear(self) -> None:
        self._list.clear()


__all__ = ["LogPanel"]
