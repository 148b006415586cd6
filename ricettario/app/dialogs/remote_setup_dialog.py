"""
Guided dialog for connecting the catalog to a remote recipes backend.
"""

from __future__ import annotations

from PySide6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QFormLayout,
    QPlainTextEdit,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from ricettario.services.provisioning_wizard import ProvisioningWizard, WizardStep
from ricettario.ui import message_dialogs

_PAGE_INDEX = {
    WizardStep.INTRO: 0,
    WizardStep.CREDENTIALS: 1,
    WizardStep.SCHEMA_CHECK: 2,
    WizardStep.CONNECTED: 3,
}


class RemoteSetupDialog(QDialog):
    """View over a ProvisioningWizard; every button maps to one wizard call."""

    def __init__(self, wizard: ProvisioningWizard, parent=None) -> None:
        super().__init__(parent)
        self.wizard = wizard
        self.setWindowTitle("Remote Backend Setup")
        self.setModal(True)
        self.resize(560, 420)

        layout = QVBoxLayout(self)
        self.pages = QStackedWidget(self)
        self.pages.addWidget(self._build_intro_page())
        self.pages.addWidget(self._build_credentials_page())
        self.pages.addWidget(self._build_schema_page())
        self.pages.addWidget(self._build_connected_page())
        layout.addWidget(self.pages, stretch=1)

        self.lbl_notice = QLabel()
        self.lbl_notice.setStyleSheet("color: green;")
        self.lbl_notice.setWordWrap(True)
        self.lbl_error = QLabel()
        self.lbl_error.setStyleSheet("color: #960000;")
        self.lbl_error.setWordWrap(True)
        layout.addWidget(self.lbl_notice)
        layout.addWidget(self.lbl_error)

        btn_row = QHBoxLayout()
        btn_row.addStretch(1)
        self.btn_close = QPushButton("Close")
        self.btn_close.clicked.connect(self.reject)
        btn_row.addWidget(self.btn_close)
        layout.addLayout(btn_row)

        self.wizard.add_listener(self._on_wizard_changed)
        self.wizard.open()

    # Pages ----------------------------------------------------------
    def _build_intro_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        intro = QLabel(
            "Store your recipes in a Supabase project.\n\n"
            "You will need the project URL and the anon (public) API key, "
            "both found under Project Settings > API."
        )
        intro.setWordWrap(True)
        layout.addWidget(intro)
        layout.addStretch(1)
        self.btn_start = QPushButton("Start Setup")
        self.btn_start.clicked.connect(self.wizard.proceed)
        layout.addWidget(self.btn_start)
        return page

    def _build_credentials_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        form = QFormLayout()
        self.edit_url = QLineEdit()
        self.edit_url.setPlaceholderText("https://your-project.supabase.co")
        self.edit_key = QLineEdit()
        self.edit_key.setEchoMode(QLineEdit.Password)
        form.addRow("Project URL", self.edit_url)
        form.addRow("Anon Key", self.edit_key)
        layout.addLayout(form)
        layout.addStretch(1)

        btn_row = QHBoxLayout()
        self.btn_back_credentials = QPushButton("Back")
        self.btn_test = QPushButton("Test Connection")
        btn_row.addWidget(self.btn_back_credentials)
        btn_row.addStretch(1)
        btn_row.addWidget(self.btn_test)
        layout.addLayout(btn_row)

        self.edit_url.textChanged.connect(self._on_credentials_edited)
        self.edit_key.textChanged.connect(self._on_credentials_edited)
        self.btn_back_credentials.clicked.connect(self.wizard.back)
        self.btn_test.clicked.connect(self.wizard.test_connection)
        return page

    def _build_schema_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        self.lbl_schema = QLabel()
        self.lbl_schema.setWordWrap(True)
        self.lbl_schema.setStyleSheet("font-weight: bold;")
        layout.addWidget(self.lbl_schema)

        layout.addWidget(QLabel("SQL that will be executed on the project:"))
        self.sql_view = QPlainTextEdit()
        self.sql_view.setReadOnly(True)
        try:
            self.sql_view.setPlainText(self.wizard.ddl_text())
        except OSError:
            self.sql_view.setPlainText("")
        layout.addWidget(self.sql_view, stretch=1)

        btn_row = QHBoxLayout()
        self.btn_back_schema = QPushButton("Back")
        self.btn_recheck = QPushButton("Check Again")
        self.btn_provision = QPushButton("Create Table")
        btn_row.addWidget(self.btn_back_schema)
        btn_row.addStretch(1)
        btn_row.addWidget(self.btn_recheck)
        btn_row.addWidget(self.btn_provision)
        layout.addLayout(btn_row)

        self.btn_back_schema.clicked.connect(self.wizard.back)
        self.btn_recheck.clicked.connect(self.wizard.check_schema)
        self.btn_provision.clicked.connect(self.wizard.provision)
        return page

    def _build_connected_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        self.lbl_connected = QLabel()
        self.lbl_connected.setWordWrap(True)
        self.lbl_connected.setStyleSheet("color: green; font-weight: bold;")
        layout.addWidget(self.lbl_connected)
        layout.addStretch(1)
        self.btn_disconnect = QPushButton("Disconnect")
        self.btn_disconnect.clicked.connect(self._on_disconnect_clicked)
        layout.addWidget(self.btn_disconnect)
        return page

    # Wiring ---------------------------------------------------------
    def _on_credentials_edited(self, *args) -> None:
        self.wizard.set_credentials(self.edit_url.text(), self.edit_key.text())

    def _on_disconnect_clicked(self) -> None:  # pragma: no cover - UI interaction
        if message_dialogs.ask_confirmation(
            self,
            "Disconnect",
            "Forget the saved remote project? Recipes already stored remotely are not deleted.",
        ):
            self.wizard.disconnect()

    def _on_wizard_changed(self, wizard: ProvisioningWizard) -> None:
        self.pages.setCurrentIndex(_PAGE_INDEX[wizard.step])
        busy = wizard.busy is not None

        self._set_text_quietly(self.edit_url, wizard.url)
        self._set_text_quietly(self.edit_key, wizard.anon_key)
        self.edit_url.setEnabled(not busy)
        self.edit_key.setEnabled(not busy)
        self.btn_test.setEnabled(wizard.can_test_connection)
        self.btn_test.setText("Testing..." if wizard.busy == "test_connection" else "Test Connection")
        self.btn_back_credentials.setEnabled(not busy)

        if wizard.busy == "check_schema":
            self.lbl_schema.setText("Checking for the recipes table...")
        elif wizard.busy == "provision":
            self.lbl_schema.setText("Creating the recipes table...")
        elif wizard.table_exists is False:
            self.lbl_schema.setText("The recipes table does not exist yet. Create it to finish the setup.")
        elif wizard.table_exists is None:
            self.lbl_schema.setText("The schema state is unknown. Check again.")
        else:
            self.lbl_schema.setText("The recipes table is ready.")
        self.btn_provision.setEnabled(wizard.can_provision)
        self.btn_recheck.setEnabled(not busy and wizard.table_exists is not True)
        self.btn_back_schema.setEnabled(not busy)

        self.lbl_connected.setText(f"Connected to {wizard.url}")
        self.lbl_notice.setText(wizard.notice)
        self.lbl_error.setText(wizard.error_message)

    @staticmethod
    def _set_text_quietly(edit: QLineEdit, text: str) -> None:
        if edit.text() == text:
            return
        edit.blockSignals(True)
        edit.setText(text)
        edit.blockSignals(False)

    def done(self, result: int) -> None:  # type: ignore[override]
        self.wizard.remove_listener(self._on_wizard_changed)
        self.wizard.close()
        super().done(result)
