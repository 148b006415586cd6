"""Modal message helpers shared by the window and dialogs."""
from __future__ import annotations

from typing import Optional

from PySide6 import QtWidgets

from ricettario.core.errors import UserFacingError
from ricettario.lib.redaction import redact

Parent = Optional[QtWidgets.QWidget]


def _message_box(
    parent: Parent,
    icon: QtWidgets.QMessageBox.Icon,
    title: str,
    text: str,
    *,
    informative: str = "",
    details: str = "",
) -> QtWidgets.QMessageBox:
    box = QtWidgets.QMessageBox(parent)
    box.setIcon(icon)
    box.setWindowTitle(title)
    box.setText(text)
    if informative:
        box.setInformativeText(informative)
    if details:
        box.setDetailedText(redact(details))
    return box


def show_error(parent: Parent, title: str, message: str) -> None:
    _message_box(parent, QtWidgets.QMessageBox.Critical, title, message).exec()


def show_warning(parent: Parent, title: str, message: str) -> None:
    _message_box(parent, QtWidgets.QMessageBox.Warning, title, message).exec()


def show_info(parent: Parent, title: str, message: str) -> None:
    _message_box(parent, QtWidgets.QMessageBox.Information, title, message).exec()


def ask_confirmation(parent: Parent, title: str, message: str, *, default_yes: bool = False) -> bool:
    box = _message_box(parent, QtWidgets.QMessageBox.Question, title, message)
    box.setStandardButtons(QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No)
    box.setDefaultButton(QtWidgets.QMessageBox.Yes if default_yes else QtWidgets.QMessageBox.No)
    return box.exec() == QtWidgets.QMessageBox.Yes


def show_user_error(parent: Parent, error: UserFacingError) -> None:
    """Show the error with its remediation and, when present, the underlying cause."""
    cause = error.__cause__
    box = _message_box(
        parent,
        QtWidgets.QMessageBox.Critical,
        error.title,
        str(error) or "An error occurred.",
        informative=error.remediation,
        details=f"{type(cause).__name__}: {cause}" if cause is not None else "",
    )
    box.exec()


__all__ = [
    "show_error",
    "show_warning",
    "show_info",
    "ask_confirmation",
    "show_user_error",
]
