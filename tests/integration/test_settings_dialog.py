from __future__ import annotations

import json
from pathlib import Path

import pytest
from PySide6 import QtWidgets

from ricettario.app.dialogs.settings_dialog import SettingsDialog
from ricettario.core.errors import InvalidShapeError
from ricettario.core.models import Recipe, RemoteConfig
from ricettario.services.backup_codec import BACKUP_PREFIX, BackupCodec
from ricettario.services.repository import RECIPES_KEY, SETTINGS_KEY, CatalogRepository
from ricettario.ui import message_dialogs


@pytest.fixture
def dialog(qt_app: QtWidgets.QApplication, repository: CatalogRepository):
    dlg = SettingsDialog(repository)
    yield dlg
    dlg.reject()
    dlg.deleteLater()


@pytest.mark.integration
def test_local_data_table_lists_keys_with_masked_secrets(
    qt_app: QtWidgets.QApplication, repository: CatalogRepository
) -> None:
    repository.update_settings(
        remote_config=RemoteConfig(url="https://demo.supabase.co", anon_key="super-secret-anon", connected=True)
    )
    repository.upsert_recipe(Recipe(title="Arancini"))
    dlg = SettingsDialog(repository)
    try:
        keys = [dlg.data_table.item(row, 0).text() for row in range(dlg.data_table.rowCount())]
        values = " ".join(dlg.data_table.item(row, 1).text() for row in range(dlg.data_table.rowCount()))

        assert keys == sorted([SETTINGS_KEY, RECIPES_KEY])
        assert "super-secret-anon" not in values
        assert "Connected to https://demo.supabase.co" == dlg.lbl_remote_status.text()
    finally:
        dlg.reject()
        dlg.deleteLater()


@pytest.mark.integration
def test_save_general_updates_theme_and_language(
    dialog: SettingsDialog, repository: CatalogRepository
) -> None:
    dialog.theme_combo.setCurrentText("dark-mode")
    dialog.language_combo.setCurrentText("en")

    dialog.save_general()

    settings = repository.load_settings()
    assert (settings.theme, settings.language) == ("dark-mode", "en")
    assert dialog.data_table.rowCount() == 1


@pytest.mark.integration
def test_export_then_import_through_dialog(
    dialog: SettingsDialog, repository: CatalogRepository, tmp_path: Path
) -> None:
    repository.upsert_recipe(Recipe(title="Cannoli", category="dolce"))
    target = dialog.export_backup(tmp_path)
    assert target.name.startswith(f"{BACKUP_PREFIX}-")

    BackupCodec(repository).clear()
    assert dialog.data_table.rowCount() == 0

    assert dialog.import_backup(target) is True
    assert [r.title for r in repository.load_recipes()] == ["Cannoli"]
    assert dialog.data_table.rowCount() == 2


@pytest.mark.integration
def test_invalid_import_reports_error_and_keeps_data(
    dialog: SettingsDialog,
    repository: CatalogRepository,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    repository.upsert_recipe(Recipe(title="Sfincione"))
    shown: list[Exception] = []
    monkeypatch.setattr(message_dialogs, "show_user_error", lambda parent, error: shown.append(error))
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"settings": {}}), encoding="utf-8")

    assert dialog.import_backup(bad) is False

    assert isinstance(shown[0], InvalidShapeError)
    assert [r.title for r in repository.load_recipes()] == ["Sfincione"]


@pytest.mark.integration
def test_ai_provider_verification(dialog: SettingsDialog, repository: CatalogRepository) -> None:
    key_edit, model_edit, status = dialog._provider_rows["OpenAI"]  # type: ignore[attr-defined]
    key_edit.setText("sk-1234567")
    model_edit.setText("gpt-4o-mini")

    assert dialog.verify_provider("OpenAI") is True
    assert status.text() == "Active"

    key_edit.setText("sk")
    assert dialog.verify_provider("OpenAI") is False
    assert status.text() == "Invalid"

    dialog.remove_provider("OpenAI")
    assert repository.load_settings().ai_providers == ()
    assert status.text() == ""
    assert key_edit.text() == ""


@pytest.mark.integration
def test_dialog_stops_listening_after_close(qt_app: QtWidgets.QApplication, repository: CatalogRepository) -> None:
    dlg = SettingsDialog(repository)
    dlg.reject()
    dlg.deleteLater()

    # Would touch deleted widgets if the listener were still registered.
    repository.reinitialize()
