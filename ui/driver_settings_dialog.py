"""Settings dialog for backup output and hardware ID rules."""
from __future__ import annotations

from pathlib import Path

from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from driver_backup.user_settings import SettingsStore, UserSettings, parse_prefix_list
from services.grouping import GroupStrategy


class DriverSettingsDialog(QDialog):
    def __init__(self, settings: UserSettings, store: SettingsStore, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._settings = settings
        self._store = store
        self.setWindowTitle("Driver Backup Settings")
        self.setMinimumWidth(520)
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        form = QFormLayout()

        self._output_root = QLineEdit(self._settings.output_root)
        form.addRow("Backup Output Root", self._make_dir_picker(self._output_root, "Select Backup Output Root"))

        self._strategy = QComboBox()
        for strategy in GroupStrategy:
            self._strategy.addItem(strategy.title, strategy.value)
        index = self._strategy.findData(self._settings.group_strategy)
        self._strategy.setCurrentIndex(max(index, 0))
        form.addRow("Default Grouping", self._strategy)

        self._bus_prefixes = QLineEdit(", ".join(self._settings.extra_bus_prefixes))
        self._bus_prefixes.setPlaceholderText("e.g. SCSI, SD")
        form.addRow("Extra Bus Prefixes", self._bus_prefixes)

        self._verbose = QCheckBox("Verbose logging")
        self._verbose.setChecked(self._settings.verbose)
        form.addRow("", self._verbose)
        layout.addLayout(form)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._save)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _make_dir_picker(self, field: QLineEdit, title: str) -> QWidget:
        container = QWidget()
        row = QHBoxLayout(container)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(field)
        browse = QPushButton("Browse")
        browse.clicked.connect(lambda: self._browse_for_dir(field, title))
        row.addWidget(browse)
        return container

    def _browse_for_dir(self, field: QLineEdit, title: str) -> None:
        current = field.text().strip()
        start_dir = current or str(Path.home())
        path = QFileDialog.getExistingDirectory(self, title, start_dir)
        if path:
            field.setText(path)

    def _save(self) -> None:
        self._settings.output_root = self._output_root.text().strip() or self._settings.output_root
        self._settings.group_strategy = self._strategy.currentData() or GroupStrategy.CLASS_PACKAGE.value
        self._settings.extra_bus_prefixes = parse_prefix_list(self._bus_prefixes.text())
        self._settings.verbose = self._verbose.isChecked()
        self._store.save(self._settings)
        self.accept()
