from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QGridLayout,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from ricettario.core.errors import UserFacingError
from ricettario.core.models import DEFAULT_THEME, LANGUAGES
from ricettario.lib.paths import default_backup_dir
from ricettario.lib.redaction import mask_secrets, redact
from ricettario.services import ai_providers
from ricettario.services.backup_codec import BackupCodec
from ricettario.services.provisioning_wizard import ProvisioningWizard
from ricettario.services.repository import CatalogRepository
from ricettario.ui import message_dialogs

THEMES = (DEFAULT_THEME, "warm-orange", "forest-green", "elegant-purple", "dark-mode")
_PREVIEW_LENGTH = 120


class SettingsDialog(QDialog):
    """Tabbed settings: general, local data, remote backend and AI providers."""

    def __init__(
        self,
        repository: CatalogRepository,
        *,
        codec: Optional[BackupCodec] = None,
        wizard_factory: Optional[Callable[[CatalogRepository], ProvisioningWizard]] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.resize(720, 480)
        self._repository = repository
        self._codec = codec or BackupCodec(repository)
        self._wizard_factory = wizard_factory or ProvisioningWizard
        self._logger = logging.getLogger(__name__)

        layout = QVBoxLayout(self)
        self.tabs = QTabWidget(self)
        self.tabs.addTab(self._build_general_tab(), "General")
        self.tabs.addTab(self._build_data_tab(), "Local Data")
        self.tabs.addTab(self._build_remote_tab(), "Remote Backend")
        self.tabs.addTab(self._build_ai_tab(), "AI Providers")
        layout.addWidget(self.tabs)

        bb = QDialogButtonBox(QDialogButtonBox.Close, parent=self)
        bb.rejected.connect(self.reject)
        layout.addWidget(bb)

        self._repository.add_reload_listener(self._on_repository_reloaded)
        self._load_state()

    # General --------------------------------------------------------
    def _build_general_tab(self) -> QWidget:
        page = QWidget()
        form = QFormLayout(page)
        self.theme_combo = QComboBox()
        self.theme_combo.addItems(list(THEMES))
        self.language_combo = QComboBox()
        self.language_combo.addItems(list(LANGUAGES))
        form.addRow("Theme", self.theme_combo)
        form.addRow("Language", self.language_combo)
        self.btn_save_general = QPushButton("Save")
        self.btn_save_general.clicked.connect(self.save_general)
        form.addRow(self.btn_save_general)
        return page

    def save_general(self) -> None:
        self._repository.update_settings(
            theme=self.theme_combo.currentText(),
            language=self.language_combo.currentText(),
        )
        self.refresh_local_data()

    # Local data -----------------------------------------------------
    def _build_data_tab(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        self.data_table = QTableWidget(0, 2)
        self.data_table.setHorizontalHeaderLabels(["Key", "Value"])
        self.data_table.horizontalHeader().setSectionResizeMode(1, QHeaderView.Stretch)
        self.data_table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.data_table.setSelectionMode(QAbstractItemView.SingleSelection)
        self.data_table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        layout.addWidget(self.data_table, stretch=1)

        btn_row = QHBoxLayout()
        self.btn_export = QPushButton("Export Backup")
        self.btn_import = QPushButton("Import Backup")
        self.btn_delete_key = QPushButton("Delete Selected")
        self.btn_clear = QPushButton("Clear All Data")
        for btn in (self.btn_export, self.btn_import, self.btn_delete_key, self.btn_clear):
            btn_row.addWidget(btn)
        layout.addLayout(btn_row)

        self.btn_export.clicked.connect(self._on_export_clicked)
        self.btn_import.clicked.connect(self._on_import_clicked)
        self.btn_delete_key.clicked.connect(self._on_delete_key_clicked)
        self.btn_clear.clicked.connect(self._on_clear_clicked)
        return page

    def refresh_local_data(self) -> None:
        rows = self._codec.local_data()
        self.data_table.setRowCount(len(rows))
        for row, (key, value) in enumerate(rows):
            text = redact(json.dumps(mask_secrets(value), ensure_ascii=False))
            if len(text) > _PREVIEW_LENGTH:
                text = text[:_PREVIEW_LENGTH] + "..."
            key_item = QTableWidgetItem(key)
            key_item.setData(Qt.UserRole, key)
            self.data_table.setItem(row, 0, key_item)
            self.data_table.setItem(row, 1, QTableWidgetItem(text))

    def selected_key(self) -> Optional[str]:
        row = self.data_table.currentRow()
        if row < 0:
            return None
        item = self.data_table.item(row, 0)
        return item.data(Qt.UserRole) if item is not None else None

    def export_backup(self, directory: Path) -> Path:
        return self._codec.export_to(directory)

    def import_backup(self, path: Path) -> bool:
        try:
            self._codec.import_file(path)
        except UserFacingError as exc:
            message_dialogs.show_user_error(self, exc)
            return False
        return True

    def _on_export_clicked(self) -> None:  # pragma: no cover - UI interaction
        directory = QFileDialog.getExistingDirectory(self, "Export Backup", str(default_backup_dir()))
        if not directory:
            return
        try:
            target = self.export_backup(Path(directory))
        except OSError as exc:
            self._logger.warning("Backup export failed", extra={"operation": "export"}, exc_info=True)
            message_dialogs.show_error(self, "Export Failed", f"Could not write the backup: {exc}")
            return
        message_dialogs.show_info(self, "Export Backup", f"Backup saved to {target}")

    def _on_import_clicked(self) -> None:  # pragma: no cover - UI interaction
        path, _ = QFileDialog.getOpenFileName(
            self, "Import Backup", str(default_backup_dir()), "Backup files (*.json)"
        )
        if not path:
            return
        if not message_dialogs.ask_confirmation(
            self, "Import Backup", "Importing replaces all current settings and recipes. Continue?"
        ):
            return
        if self.import_backup(Path(path)):
            message_dialogs.show_info(self, "Import Backup", "Backup imported.")

    def _on_delete_key_clicked(self) -> None:  # pragma: no cover - UI interaction
        key = self.selected_key()
        if key is None:
            message_dialogs.show_warning(self, "Delete", "Select a stored collection first.")
            return
        if message_dialogs.ask_confirmation(self, "Delete", f"Delete '{key}' from local storage?"):
            self._codec.delete_key(key)

    def _on_clear_clicked(self) -> None:  # pragma: no cover - UI interaction
        if message_dialogs.ask_confirmation(
            self, "Clear All Data", "Delete all local settings and recipes? This cannot be undone."
        ):
            self._codec.clear()

    # Remote backend -------------------------------------------------
    def _build_remote_tab(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        self.lbl_remote_status = QLabel()
        self.lbl_remote_status.setWordWrap(True)
        layout.addWidget(self.lbl_remote_status)
        layout.addStretch(1)
        self.btn_remote_setup = QPushButton("Configure Remote Backend...")
        self.btn_remote_setup.clicked.connect(self._on_remote_setup_clicked)
        layout.addWidget(self.btn_remote_setup)
        return page

    def refresh_remote_status(self) -> None:
        config = self._repository.load_settings().remote_config
        if config is not None and config.connected:
            self.lbl_remote_status.setText(f"Connected to {config.url}")
        else:
            self.lbl_remote_status.setText("Recipes are stored on this computer only.")

    def _on_remote_setup_clicked(self) -> None:  # pragma: no cover - UI interaction
        from ricettario.app.dialogs.remote_setup_dialog import RemoteSetupDialog

        dialog = RemoteSetupDialog(self._wizard_factory(self._repository), parent=self)
        dialog.exec()
        self.refresh_remote_status()

    # AI providers ---------------------------------------------------
    def _build_ai_tab(self) -> QWidget:
        page = QWidget()
        grid = QGridLayout(page)
        grid.addWidget(QLabel("Provider"), 0, 0)
        grid.addWidget(QLabel("API Key"), 0, 1)
        grid.addWidget(QLabel("Model"), 0, 2)
        self._provider_rows: dict[str, tuple[QLineEdit, QLineEdit, QLabel]] = {}
        for row, name in enumerate(ai_providers.KNOWN_PROVIDERS, start=1):
            key_edit = QLineEdit()
            key_edit.setEchoMode(QLineEdit.Password)
            model_edit = QLineEdit()
            status = QLabel()
            btn_verify = QPushButton("Verify")
            btn_remove = QPushButton("Remove")
            btn_verify.clicked.connect(lambda *_, n=name: self.verify_provider(n))
            btn_remove.clicked.connect(lambda *_, n=name: self.remove_provider(n))
            grid.addWidget(QLabel(name), row, 0)
            grid.addWidget(key_edit, row, 1)
            grid.addWidget(model_edit, row, 2)
            grid.addWidget(btn_verify, row, 3)
            grid.addWidget(btn_remove, row, 4)
            grid.addWidget(status, row, 5)
            self._provider_rows[name] = (key_edit, model_edit, status)
        grid.setRowStretch(len(ai_providers.KNOWN_PROVIDERS) + 1, 1)
        return page

    def verify_provider(self, name: str) -> bool:
        key_edit, model_edit, _ = self._provider_rows[name]
        saved = ai_providers.verify_and_save(
            self._repository, name, key_edit.text().strip(), model_edit.text().strip()
        )
        self.refresh_local_data()
        self.refresh_providers()
        return saved.active

    def remove_provider(self, name: str) -> None:
        ai_providers.remove_provider(self._repository, name)
        key_edit, model_edit, _ = self._provider_rows[name]
        key_edit.clear()
        model_edit.clear()
        self.refresh_local_data()
        self.refresh_providers()

    def refresh_providers(self) -> None:
        inputs = ai_providers.provider_inputs(self._repository)
        configured = {p.name: p for p in self._repository.load_settings().ai_providers}
        for name, (key_edit, model_edit, status) in self._provider_rows.items():
            key_edit.setText(inputs[name]["api_key"])
            model_edit.setText(inputs[name]["model"])
            provider = configured.get(name)
            if provider is None:
                status.setText("")
            elif provider.active:
                status.setText("Active")
                status.setStyleSheet("color: green;")
            else:
                status.setText("Invalid")
                status.setStyleSheet("color: #960000;")

    # State ----------------------------------------------------------
    def _load_state(self) -> None:
        settings = self._repository.load_settings()
        if self.theme_combo.findText(settings.theme) < 0:
            self.theme_combo.addItem(settings.theme)
        self.theme_combo.setCurrentText(settings.theme)
        self.language_combo.setCurrentText(settings.language)
        self.refresh_local_data()
        self.refresh_remote_status()
        self.refresh_providers()

    def _on_repository_reloaded(self, repository: CatalogRepository) -> None:
        self._load_state()

    def done(self, result: int) -> None:  # type: ignore[override]
        self._repository.remove_reload_listener(self._on_repository_reloaded)
        super().done(result)
