#!/usr/bin/env python3
"""Desktop launcher for the driver backup tool."""

from __future__ import annotations

import logging
import os
import sys

from PySide6.QtWidgets import QApplication

from driver_backup.user_settings import SettingsStore
from services.privilege import is_admin, relaunch_as_admin
from ui.main_window import MainWindow
from ui.theme import apply_dark_theme

logger = logging.getLogger("driver_backup_gui")


def main() -> int:
    store = SettingsStore()
    settings = store.load()
    logging.basicConfig(
        format="[%(levelname)s] %(message)s",
        level=logging.DEBUG if settings.verbose else logging.INFO,
    )

    if os.name == "nt" and not is_admin():
        if relaunch_as_admin():
            return 0
        logger.warning("Running without administrator privileges; exports will be refused")

    app = QApplication(sys.argv)
    apply_dark_theme()
    window = MainWindow(store)
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
