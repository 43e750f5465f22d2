"""Main window hosting the drivers tab and the activity log."""
from __future__ import annotations

from datetime import datetime

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtWidgets import QMainWindow, QPlainTextEdit, QSplitter, QVBoxLayout, QWidget

from driver_backup.user_settings import SettingsStore
from ui.drivers_tab import DriversTab


class MainWindow(QMainWindow):
    def __init__(self, settings_store: SettingsStore | None = None) -> None:
        super().__init__()
        self.setWindowTitle("Driver Backup")
        self.resize(1400, 850)
        self._thread_pool = QThreadPool.globalInstance()
        store = settings_store or SettingsStore()

        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        self._log_view.setMaximumBlockCount(5000)

        self._drivers_tab = DriversTab(self.append_log, self._thread_pool, settings_store=store)

        splitter = QSplitter(Qt.Vertical)
        splitter.addWidget(self._drivers_tab)
        splitter.addWidget(self._log_view)
        splitter.setStretchFactor(0, 4)
        splitter.setStretchFactor(1, 1)

        container = QWidget()
        layout = QVBoxLayout(container)
        layout.addWidget(splitter)
        self.setCentralWidget(container)
        self.statusBar().showMessage(f"Settings: {store.path}")

    def append_log(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self._log_view.appendPlainText(f"{stamp} {message}")
