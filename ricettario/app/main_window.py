from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QPoint, Qt
from PySide6.QtWidgets import (
    QComboBox,
    QDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMenu,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from ricettario.core.models import ALL_CATEGORIES, CATEGORIES, Recipe
from ricettario.logging.gui_bridge import GuiLogRecord
from ricettario.services.repository import CatalogRepository
from ricettario.ui import message_dialogs
from ricettario.ui.log_panel import LogPanel

SettingsDialogFactory = Callable[[CatalogRepository, QWidget], QDialog]


def _describe(recipe: Recipe) -> str:
    parts = [recipe.category, recipe.difficulty]
    if recipe.time_minutes:
        parts.append(f"{recipe.time_minutes} min")
    return f"{recipe.title}  ({', '.join(parts)})"


class MainWindow(QMainWindow):
    """Recipe catalog window.

    Contains:
    - Category filter and search box
    - Recipe list with a context menu for deletion
    - Log pane fed by the GUI log handler
    """

    def __init__(
        self,
        repository: CatalogRepository,
        *,
        settings_dialog_factory: Optional[SettingsDialogFactory] = None,
    ) -> None:
        super().__init__()
        self.setWindowTitle("Ricettario")
        self._repository = repository
        self._settings_dialog_factory = settings_dialog_factory

        central = QWidget(self)
        self.setCentralWidget(central)
        root = QVBoxLayout(central)

        filter_row = QHBoxLayout()
        self.category_combo = QComboBox()
        self.category_combo.addItems(list(CATEGORIES))
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search recipes")
        self.btn_settings = QPushButton("Settings")
        filter_row.addWidget(self.category_combo)
        filter_row.addWidget(self.search_edit, stretch=1)
        filter_row.addWidget(self.btn_settings)
        root.addLayout(filter_row)

        splitter = QSplitter(Qt.Vertical, self)
        list_box = QWidget()
        list_layout = QVBoxLayout(list_box)
        list_layout.setContentsMargins(0, 0, 0, 0)
        self.lbl_count = QLabel()
        self.recipe_list = QListWidget()
        self.recipe_list.setContextMenuPolicy(Qt.CustomContextMenu)
        self.recipe_list.customContextMenuRequested.connect(self._on_recipe_context_menu)
        list_layout.addWidget(self.lbl_count)
        list_layout.addWidget(self.recipe_list, stretch=1)
        splitter.addWidget(list_box)

        self.log_panel = LogPanel()
        splitter.addWidget(self.log_panel)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 1)
        root.addWidget(splitter, stretch=1)

        self.category_combo.currentTextChanged.connect(self.refresh_recipes)
        self.search_edit.textChanged.connect(self.refresh_recipes)
        self.btn_settings.clicked.connect(self.open_settings)
        self._repository.add_reload_listener(self._on_repository_reloaded)

        self.refresh_recipes()

    def log_sink(self, record: GuiLogRecord) -> None:
        self.log_panel.sink(record)

    def refresh_recipes(self, *args) -> None:
        category = self.category_combo.currentText() or ALL_CATEGORIES
        recipes = self._repository.search_recipes(category, self.search_edit.text())
        self.recipe_list.clear()
        for recipe in recipes:
            item = QListWidgetItem(_describe(recipe))
            item.setData(Qt.UserRole, recipe.id)
            self.recipe_list.addItem(item)
        total = len(self._repository.load_recipes())
        self.lbl_count.setText(f"{len(recipes)} of {total} recipes")

    def visible_recipe_ids(self) -> list[str]:
        return [self.recipe_list.item(row).data(Qt.UserRole) for row in range(self.recipe_list.count())]

    def delete_recipe(self, recipe_id: str) -> bool:
        removed = self._repository.delete_recipe(recipe_id)
        self.refresh_recipes()
        return removed

    def open_settings(self) -> None:  # pragma: no cover - UI interaction
        factory = self._settings_dialog_factory
        if factory is None:
            from ricettario.app.dialogs.settings_dialog import SettingsDialog

            dialog = SettingsDialog(self._repository, parent=self)
        else:
            dialog = factory(self._repository, self)
        dialog.exec()
        self.refresh_recipes()

    def _on_repository_reloaded(self, repository: CatalogRepository) -> None:
        self.refresh_recipes()

    def _on_recipe_context_menu(self, pos: QPoint) -> None:  # pragma: no cover - UI interaction
        item = self.recipe_list.itemAt(pos)
        if item is None:
            return
        recipe_id = item.data(Qt.UserRole)
        menu = QMenu(self)
        act_delete = menu.addAction("Delete Recipe")
        chosen = menu.exec(self.recipe_list.mapToGlobal(pos))
        if chosen is act_delete and message_dialogs.ask_confirmation(
            self, "Delete Recipe", f"Delete '{item.text()}'?"
        ):
            self.delete_recipe(recipe_id)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._repository.remove_reload_listener(self._on_repository_reloaded)
        super().closeEvent(event)
