from __future__ import annotations

import logging
import sys

from PySide6.QtWidgets import QApplication

from ricettario.app.main_window import MainWindow
from ricettario.core.errors import UserFacingError
from ricettario.lib.paths import local_store_path
from ricettario.logging.config import configure_logging
from ricettario.logging.gui_bridge import build_gui_handler
from ricettario.services import background_runner
from ricettario.services.kv_store import KeyValueStore
from ricettario.services.repository import CatalogRepository
from ricettario.ui import message_dialogs


def main() -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    configure_logging()
    logger = logging.getLogger(__name__)

    store_path = local_store_path()
    try:
        store = KeyValueStore.open(store_path)
    except UserFacingError as exc:
        logger.error("Local store unavailable", extra={"operation": "startup", "path": str(store_path)})
        message_dialogs.show_user_error(None, exc)
        return 1

    repository = CatalogRepository(store)
    win = MainWindow(repository)
    configure_logging(lambda: build_gui_handler(win.log_sink))
    logger.info(
        "Catalog ready",
        extra={"operation": "startup", "path": str(store_path), "recipe_count": len(repository.load_recipes())},
    )

    win.resize(900, 600)
    win.show()

    try:
        return app.exec()
    finally:
        background_runner.shutdown()
        store.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
