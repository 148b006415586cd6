from __future__ import annotations

import pytest
from PySide6 import QtWidgets

from ricettario.app.dialogs.remote_setup_dialog import RemoteSetupDialog
from ricettario.core.errors import RpcUnavailableError
from ricettario.core.models import RemoteConfig
from ricettario.services.provisioning_wizard import ProvisioningWizard, WizardStep, run_inline
from ricettario.services.repository import CatalogRepository


class StubBackend:
    def __init__(self, exists: bool, provision_error: Exception | None = None) -> None:
        self.exists = exists
        self.provision_error = provision_error
        self.provisioned = 0

    def check_reachable(self) -> None:
        return None

    def table_exists(self, name: str) -> bool:
        return self.exists

    def provision_schema(self, ddl: str) -> None:
        self.provisioned += 1
        if self.provision_error is not None:
            raise self.provision_error
        self.exists = True


def _dialog(repository: CatalogRepository, backend: StubBackend) -> RemoteSetupDialog:
    wizard = ProvisioningWizard(
        repository,
        connector=lambda url, key: backend,
        runner=run_inline,
        ddl_loader=lambda: "CREATE TABLE public.recipes (id uuid);",
    )
    return RemoteSetupDialog(wizard)


@pytest.mark.integration
def test_dialog_walks_through_provisioning(
    qt_app: QtWidgets.QApplication, repository: CatalogRepository
) -> None:
    backend = StubBackend(exists=False)
    dialog = _dialog(repository, backend)
    try:
        assert dialog.pages.currentIndex() == 0
        dialog.btn_start.click()
        assert dialog.pages.currentIndex() == 1
        assert not dialog.btn_test.isEnabled()

        dialog.edit_url.setText("https://demo.supabase.co")
        dialog.edit_key.setText("anon-key")
        assert dialog.btn_test.isEnabled()

        dialog.btn_test.click()
        assert dialog.wizard.step is WizardStep.SCHEMA_CHECK
        assert dialog.pages.currentIndex() == 2
        assert dialog.btn_provision.isEnabled()
        assert "CREATE TABLE public.recipes" in dialog.sql_view.toPlainText()

        dialog.btn_provision.click()
        assert dialog.pages.currentIndex() == 3
        assert "https://demo.supabase.co" in dialog.lbl_connected.text()
        assert repository.load_settings().remote_config == RemoteConfig(
            url="https://demo.supabase.co", anon_key="anon-key", connected=True
        )
    finally:
        dialog.reject()
        dialog.deleteLater()


@pytest.mark.integration
def test_dialog_shows_provision_error_inline(
    qt_app: QtWidgets.QApplication, repository: CatalogRepository
) -> None:
    backend = StubBackend(
        exists=False,
        provision_error=RpcUnavailableError(
            "The backend does not expose the 'execute_sql' procedure.",
            title="Provisioning Unavailable",
            remediation="Run the script manually.",
        ),
    )
    dialog = _dialog(repository, backend)
    try:
        dialog.wizard.proceed()
        dialog.wizard.set_credentials("https://demo.supabase.co", "anon-key")
        dialog.wizard.test_connection()
        dialog.btn_provision.click()

        assert dialog.pages.currentIndex() == 2
        assert "execute_sql" in dialog.lbl_error.text()
        assert "Run the script manually." in dialog.lbl_error.text()
        assert dialog.btn_provision.isEnabled()
    finally:
        dialog.reject()
        dialog.deleteLater()


@pytest.mark.integration
def test_dialog_opens_connected_and_disconnects(
    qt_app: QtWidgets.QApplication, repository: CatalogRepository
) -> None:
    repository.update_settings(
        remote_config=RemoteConfig(url="https://demo.supabase.co", anon_key="anon-key", connected=True)
    )
    dialog = _dialog(repository, StubBackend(exists=True))
    try:
        assert dialog.pages.currentIndex() == 3

        dialog.wizard.disconnect()

        assert dialog.pages.currentIndex() == 0
        assert repository.load_settings().remote_config == RemoteConfig.disconnected()
    finally:
        dialog.reject()
        dialog.deleteLater()


@pytest.mark.integration
def test_closing_dialog_closes_wizard(qt_app: QtWidgets.QApplication, repository: CatalogRepository) -> None:
    dialog = _dialog(repository, StubBackend(exists=True))
    wizard = dialog.wizard

    dialog.reject()
    dialog.deleteLater()

    assert not wizard.is_open
