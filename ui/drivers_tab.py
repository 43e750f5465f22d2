"""Drivers tab UI for backing up installed packages and scanning INF folders."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QComboBox,
    QFileDialog,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from driver_backup.constants import IMMUTABLE_CONFIG
from driver_backup.user_settings import SettingsStore, UserSettings
from services.driver_records import DriverRecord, display
from services.drivers import BackupResult, DriverBackupService, ScanResult
from services.grouping import GroupStrategy
from services.inf_parser import InfParser
from services.privilege import ensure_admin, validate_output_directory
from ui.driver_settings_dialog import DriverSettingsDialog
from ui.theme import badge_stylesheet, status_badge_style
from ui.workers import ServiceWorker

LogCallback = Callable[[str], None]

ARCHIVE_FILTER = "Driver archives (*.zip *.cab *.7z *.exe *.inf);;All files (*)"
COLUMNS = ["Select", "Class", "Device", "Provider", "Version", "Date", "Package", "Hardware ID", "Status"]
STATUS_COLUMN = len(COLUMNS) - 1


class DriversTab(QWidget):
    def __init__(
        self,
        log_callback: LogCallback,
        thread_pool: QThreadPool,
        *,
        settings: UserSettings | None = None,
        settings_store: SettingsStore | None = None,
    ) -> None:
        super().__init__()
        self._log = log_callback
        self._thread_pool = thread_pool
        self._settings_store = settings_store or SettingsStore()
        self._settings = settings or self._settings_store.load()
        self._refresh_service()
        self._records: list[DriverRecord] = []
        self._installed_view = False
        self._workers: set[ServiceWorker] = set()
        self._busy = False
        self._build_ui()

    def _track_worker(self, worker: ServiceWorker) -> None:
        self._workers.add(worker)
        worker.signals.finished.connect(lambda *_: self._workers.discard(worker))
        worker.signals.error.connect(lambda *_: self._workers.discard(worker))

    def _refresh_service(self) -> None:
        parser = InfParser.with_extra_prefixes(self._settings.extra_bus_prefixes)
        self._service = DriverBackupService(parser=parser)

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)

        button_row = QHBoxLayout()
        self._btn_collect = QPushButton("Collect Installed")
        self._btn_backup = QPushButton("Back Up Selected")
        self._btn_scan = QPushButton("Scan INF Folder")
        self._btn_inspect = QPushButton("Inspect Archive")
        self._btn_settings = QPushButton("Settings")
        for btn in (self._btn_collect, self._btn_backup, self._btn_scan, self._btn_inspect):
            btn.setMinimumWidth(150)
            button_row.addWidget(btn)
        button_row.addWidget(self._btn_settings)
        button_row.addStretch()
        layout.addLayout(button_row)

        option_row = QHBoxLayout()
        option_row.addWidget(QLabel("Group by"))
        self._strategy_combo = QComboBox()
        for strategy in GroupStrategy:
            self._strategy_combo.addItem(strategy.title, strategy.value)
        self._select_strategy(self._settings.group_strategy)
        option_row.addWidget(self._strategy_combo)
        self._dry_run = QCheckBox("Dry run")
        option_row.addWidget(self._dry_run)
        option_row.addStretch()
        self._btn_select_all = QPushButton("Select All")
        self._btn_select_none = QPushButton("Select None")
        option_row.addWidget(self._btn_select_all)
        option_row.addWidget(self._btn_select_none)
        layout.addLayout(option_row)

        table = QTableWidget(0, len(COLUMNS), self)
        table.setHorizontalHeaderLabels(COLUMNS)
        table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        table.setAlternatingRowColors(True)
        table.setSortingEnabled(False)
        table.verticalHeader().setVisible(False)
        header = table.horizontalHeader()
        header.setStretchLastSection(True)
        for column in range(len(COLUMNS)):
            header.setSectionResizeMode(column, QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(2, QHeaderView.ResizeMode.Stretch)
        layout.addWidget(table)
        self._table = table

        self._btn_collect.clicked.connect(self._start_collect)
        self._btn_backup.clicked.connect(self._start_backup)
        self._btn_scan.clicked.connect(self._start_scan)
        self._btn_inspect.clicked.connect(self._start_inspect)
        self._btn_settings.clicked.connect(self._open_driver_settings)
        self._btn_select_all.clicked.connect(lambda: self._set_all(Qt.Checked))
        self._btn_select_none.clicked.connect(lambda: self._set_all(Qt.Unchecked))
        self._update_backup_button()

    def _select_strategy(self, value: str) -> None:
        index = self._strategy_combo.findData(value)
        self._strategy_combo.setCurrentIndex(max(index, 0))

    def _current_strategy(self) -> GroupStrategy:
        return GroupStrategy.parse(self._strategy_combo.currentData() or GroupStrategy.CLASS_PACKAGE.value)

    def _start_worker(self, fn: Callable[..., object], on_finished: Callable[[object], None], *args: object) -> None:
        self._busy = True
        self._set_buttons_enabled(False)
        worker = ServiceWorker(fn, *args)
        worker.signals.finished.connect(on_finished)
        worker.signals.error.connect(self._handle_error)
        self._track_worker(worker)
        self._thread_pool.start(worker)

    def _start_collect(self) -> None:
        if self._busy:
            return
        self._refresh_service()
        self._log("Collecting installed third-party drivers...")
        self._start_worker(self._service.collect, self._handle_collect_results)

    def _handle_collect_results(self, records: Iterable[DriverRecord]) -> None:
        self._records = list(records)
        self._installed_view = True
        self._populate_table("Installed")
        exportable = sum(1 for record in self._records if record.is_exportable)
        self._log(f"Found {len(self._records)} third-party driver(s), {exportable} with an exportable package.")
        self._finish()

    def _start_backup(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Wait for the current operation to finish.")
            return
        if not self._installed_view:
            QMessageBox.information(self, "Nothing to Back Up", "Collect installed drivers first.")
            return
        selected = self._selected_records()
        if not selected:
            answer = QMessageBox.question(self, "No Selection", "No rows selected. Back up every listed driver?")
            if answer != QMessageBox.Yes:
                return
            selected = list(self._records)
        strategy = self._current_strategy()
        dry_run = self._dry_run.isChecked()
        output_root = Path(self._settings.output_root)
        mode = "Planning" if dry_run else "Exporting"
        self._log(f"{mode} {len(selected)} driver record(s) grouped by {strategy.title.lower()}...")
        self._start_worker(self._run_backup, self._handle_backup_results, selected, output_root, strategy, dry_run)

    def _run_backup(
        self,
        records: List[DriverRecord],
        output_root: Path,
        strategy: GroupStrategy,
        dry_run: bool,
    ) -> BackupResult:
        if not dry_run:
            ensure_admin()
            validate_output_directory(output_root)
        return self._service.backup(records, output_root, strategy=strategy, dry_run=dry_run)

    def _handle_backup_results(self, result: BackupResult) -> None:
        statuses: dict[str, str] = {}
        for outcome in result.outcomes:
            status = "OK" if outcome.success else "FAIL"
            target = outcome.group.package_path(outcome.package)
            self._log(f"[{status}] {outcome.package.identity} -> {target} :: {outcome.message}")
            if result.dry_run:
                statuses[outcome.package.identity] = "Planned"
            else:
                statuses[outcome.package.identity] = "Exported" if outcome.success else "Failed"
        for row, record in enumerate(self._records):
            identity = record.package_identity
            if identity in statuses:
                self._set_status(row, statuses[identity])
            elif identity is None and self._row_checked(row):
                self._set_status(row, "Skipped")
        self._log(
            f"Backup complete: {result.attempted} attempted, {result.succeeded} succeeded, {result.failed} failed."
        )
        if result.backup_dir is not None:
            self._log(f"Backup folder: {result.backup_dir}")
        self._finish()

    def _start_scan(self) -> None:
        if self._busy:
            return
        start_dir = self._settings.output_root or str(Path.home())
        folder = QFileDialog.getExistingDirectory(self, "Select Driver Folder", start_dir)
        if not folder:
            return
        self._refresh_service()
        self._log(f"Scanning INF files under {folder}...")
        self._start_worker(self._run_scan, self._handle_scan_results, Path(folder), self._current_strategy())

    def _start_inspect(self) -> None:
        if self._busy:
            return
        path, _ = QFileDialog.getOpenFileName(self, "Select Driver Archive", str(Path.home()), ARCHIVE_FILTER)
        if not path:
            return
        self._refresh_service()
        self._log(f"Inspecting {path}...")
        self._start_worker(self._run_inspect, self._handle_scan_results, Path(path), self._current_strategy())

    def _scan_output_dir(self) -> Path:
        stamp = datetime.now().strftime(IMMUTABLE_CONFIG.outputs.backup_dir_timestamp)
        return Path(self._settings.output_root) / f"scan_{stamp}"

    def _run_scan(self, folder: Path, strategy: GroupStrategy) -> ScanResult:
        return self._service.scan(folder, strategy=strategy, output_dir=self._scan_output_dir())

    def _run_inspect(self, archive: Path, strategy: GroupStrategy) -> ScanResult:
        return self._service.inspect(archive, strategy=strategy, output_dir=self._scan_output_dir())

    def _handle_scan_results(self, result: ScanResult) -> None:
        self._records = result.records
        self._installed_view = False
        self._populate_table("Parsed")
        for failure in result.failures:
            self._log(f"[WARN] {failure.path}: {failure.reason}")
        self._log(
            f"Scan complete: {len(result.files)} INF file(s), {len(self._records)} record(s) "
            f"in {len(result.groups)} group(s)."
        )
        if result.output_dir is not None:
            self._log(f"Reports written to {result.output_dir}")
        self._finish()

    def _populate_table(self, status: str) -> None:
        table = self._table
        table.setRowCount(len(self._records))
        for row, record in enumerate(self._records):
            table.setRowHeight(row, 28)
            checkbox = QTableWidgetItem()
            checkbox.setFlags(Qt.ItemIsSelectable | Qt.ItemIsUserCheckable | Qt.ItemIsEnabled)
            checkbox.setCheckState(Qt.Unchecked)
            checkbox.setData(Qt.UserRole, row)
            table.setItem(row, 0, checkbox)

            values = (
                record.device_class,
                record.display_name,
                record.provider_name,
                record.driver_version,
                record.normalized_date,
                record.inf_identity,
                record.hardware_id,
            )
            for column, value in enumerate(values, start=1):
                table.setItem(row, column, QTableWidgetItem(display(value)))
            self._set_status(row, status)
        self._update_backup_button()

    def _set_status(self, row: int, text: str) -> None:
        label = QLabel(text)
        label.setAlignment(Qt.AlignCenter)
        label.setStyleSheet(badge_stylesheet(status_badge_style(text)))
        self._table.setCellWidget(row, STATUS_COLUMN, label)

    def _row_checked(self, row: int) -> bool:
        item = self._table.item(row, 0)
        return bool(item and item.checkState() == Qt.Checked)

    def _selected_records(self) -> List[DriverRecord]:
        selections: list[DriverRecord] = []
        for row in range(self._table.rowCount()):
            item = self._table.item(row, 0)
            if item and item.checkState() == Qt.Checked:
                idx = item.data(Qt.UserRole)
                if isinstance(idx, int) and 0 <= idx < len(self._records):
                    selections.append(self._records[idx])
        return selections

    def _set_all(self, state: Qt.CheckState) -> None:
        for row in range(self._table.rowCount()):
            item = self._table.item(row, 0)
            if item:
                item.setCheckState(state)

    def _set_buttons_enabled(self, enabled: bool) -> None:
        for button in (
            self._btn_collect,
            self._btn_scan,
            self._btn_inspect,
            self._btn_settings,
            self._btn_select_all,
            self._btn_select_none,
        ):
            button.setEnabled(enabled)
        self._btn_backup.setEnabled(enabled and self._installed_view)

    def _update_backup_button(self) -> None:
        self._btn_backup.setEnabled(not self._busy and self._installed_view)

    def _finish(self) -> None:
        self._busy = False
        self._set_buttons_enabled(True)

    def _handle_error(self, message: str) -> None:
        self._finish()
        self._log(f"[ERROR] {message}")

    def _open_driver_settings(self) -> None:
        dialog = DriverSettingsDialog(self._settings, self._settings_store, self)
        if dialog.exec():
            self._refresh_service()
            self._select_strategy(self._settings.group_strategy)
            self._log("Driver backup settings saved.")
