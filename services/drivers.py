"""Driver inventory, package export and INF scanning services."""
from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Protocol, Sequence

from driver_backup.constants import IMMUTABLE_CONFIG
from services.driver_records import DriverRecord, is_inbox_provider
from services.errors import ArchiveExtractionError, DriverBackupError, PreconditionError
from services.grouping import DriverGroup, GroupPlan, GroupStrategy, PackagePlan, group_records, plan_backup
from services.inf_parser import INF_SUFFIX, InfParser, ParsedFile, ParseFailure, discover_inf_files
from services.privilege import validate_output_directory
from services.reports import (
    render_backup_csv,
    render_backup_summary,
    render_package_csv,
    render_scan_csv,
    render_scan_report,
)

logger = logging.getLogger(__name__)

OUTPUTS = IMMUTABLE_CONFIG.outputs

WMI_DRIVER_FIELDS = (
    "ClassGuid",
    "Description",
    "DeviceClass",
    "DeviceName",
    "DriverDate",
    "DriverProviderName",
    "DriverVersion",
    "InfName",
    "HardwareID",
    "DeviceID",
    "Manufacturer",
)
WMI_DRIVER_SCRIPT = (
    "Get-WmiObject Win32_PnPSignedDriver -ErrorAction Stop | "
    f"Select-Object {', '.join(WMI_DRIVER_FIELDS)} | "
    "ConvertTo-Json -Depth 2 -Compress"
)

ZIP_SUFFIXES = frozenset({".zip"})
SEVEN_ZIP_SUFFIXES = frozenset({".cab", ".7z", ".exe"})
SEVEN_ZIP_NAMES = ("7z", "7zz", "7za")


class CommandRunner(Protocol):
    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:  # pragma: no cover - protocol
        ...


class SubprocessRunner:
    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(command, capture_output=True, text=True, check=False)


class DriverMetadataSource(Protocol):
    def list_drivers(self) -> list[DriverRecord]:  # pragma: no cover - protocol
        ...


class PowerShellDriverSource:
    """Reads signed PnP driver records from WMI through PowerShell."""

    def __init__(self, *, powershell: str = "powershell", command_runner: CommandRunner | None = None) -> None:
        self._powershell = powershell
        self._runner = command_runner or SubprocessRunner()

    def list_drivers(self) -> list[DriverRecord]:
        result = self._runner.run([self._powershell, "-NoProfile", "-Command", WMI_DRIVER_SCRIPT])
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip() or f"exit code {result.returncode}"
            raise DriverBackupError(f"Driver query failed: {detail}")
        if not result.stdout or not result.stdout.strip():
            return []
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise DriverBackupError(f"Driver query returned invalid JSON: {exc}") from exc
        if isinstance(data, dict):
            data = [data]
        return [DriverRecord.from_wmi(item) for item in data or [] if isinstance(item, dict)]


class ExportFailureKind(Enum):
    PERMISSION = "permission"
    MISSING_PACKAGE = "missing-package"
    INVALID_PATH = "invalid-path"
    CORRUPTED = "corrupted"
    LAUNCH_FAILED = "launch-failed"

    @property
    def advice(self) -> str:
        return _EXPORT_ADVICE[self]


_EXPORT_ADVICE = {
    ExportFailureKind.PERMISSION: "This might be a permissions issue. Try running as Administrator.",
    ExportFailureKind.MISSING_PACKAGE: "Driver package might be corrupted or already removed.",
    ExportFailureKind.INVALID_PATH: "Path too long or invalid. Choose a shorter output directory.",
    ExportFailureKind.CORRUPTED: "This driver may be protected or corrupted. Skipping.",
    ExportFailureKind.LAUNCH_FAILED: "Make sure pnputil is in your PATH and you have administrative privileges.",
}


def classify_export_failure(returncode: int, stdout: str, stderr: str) -> ExportFailureKind | None:
    stdout_lower = (stdout or "").lower()
    stderr_lower = (stderr or "").lower()
    if "access" in stderr_lower or "denied" in stderr_lower:
        return ExportFailureKind.PERMISSION
    if "not found" in stderr_lower or "cannot find" in stderr_lower:
        return ExportFailureKind.MISSING_PACKAGE
    if "missing or invalid target directory" in stdout_lower or returncode == 87:
        return ExportFailureKind.INVALID_PATH
    if "the data is invalid" in stdout_lower or returncode == 13:
        return ExportFailureKind.CORRUPTED
    return None


@dataclass(frozen=True)
class ExportResult:
    package: str
    destination: Path
    success: bool
    returncode: int
    stdout: str = ""
    stderr: str = ""
    failure: ExportFailureKind | None = None


class PackageExporter(Protocol):
    def export(self, package: str, destination: Path) -> ExportResult:  # pragma: no cover - protocol
        ...


class PnPUtilExporter:
    def __init__(
        self,
        *,
        executable: str = IMMUTABLE_CONFIG.export.executable,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self._executable = executable
        self._runner = command_runner or SubprocessRunner()

    def export(self, package: str, destination: Path) -> ExportResult:
        command = [self._executable, "/export-driver", package, str(destination)]
        try:
            result = self._runner.run(command)
        except OSError as exc:
            return ExportResult(package, destination, False, -1, "", str(exc), ExportFailureKind.LAUNCH_FAILED)
        stdout = result.stdout or ""
        stderr = result.stderr or ""
        if result.returncode == 0:
            return ExportResult(package, destination, True, 0, stdout, stderr)
        failure = classify_export_failure(result.returncode, stdout, stderr)
        return ExportResult(package, destination, False, result.returncode, stdout, stderr, failure)


class ArchiveExtractor(Protocol):
    def extract(self, archive: Path, destination: Path) -> None:  # pragma: no cover - protocol
        ...


class ZipArchiveExtractor:
    def extract(self, archive: Path, destination: Path) -> None:
        try:
            with zipfile.ZipFile(archive) as handle:
                handle.extractall(destination)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveExtractionError(f"Failed to extract {archive}: {exc}") from exc


class SevenZipExtractor:
    def __init__(self, executable: str | None = None, *, command_runner: CommandRunner | None = None) -> None:
        self._executable = executable or self.find_executable()
        self._runner = command_runner or SubprocessRunner()

    @staticmethod
    def find_executable() -> str | None:
        for name in SEVEN_ZIP_NAMES:
            hit = shutil.which(name)
            if hit:
                return hit
        return None

    def is_available(self) -> bool:
        return self._executable is not None

    def extract(self, archive: Path, destination: Path) -> None:
        if not self._executable:
            raise PreconditionError("7-Zip (7z/7zz/7za) was not found on PATH")
        try:
            result = self._runner.run([self._executable, "x", "-y", f"-o{destination}", str(archive)])
        except OSError as exc:
            raise ArchiveExtractionError(f"Failed to run {self._executable}: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip() or f"exit code {result.returncode}"
            raise ArchiveExtractionError(f"Failed to extract {archive}: {detail}")


def select_extractor(archive: Path, *, seven_zip: SevenZipExtractor | None = None) -> ArchiveExtractor:
    suffix = Path(archive).suffix.lower()
    if suffix in ZIP_SUFFIXES:
        return ZipArchiveExtractor()
    if suffix in SEVEN_ZIP_SUFFIXES:
        extractor = seven_zip or SevenZipExtractor()
        if not extractor.is_available():
            raise PreconditionError(f"Cannot inspect {archive.name}: 7-Zip (7z/7zz/7za) was not found on PATH")
        return extractor
    supported = ", ".join(sorted(ZIP_SUFFIXES | SEVEN_ZIP_SUFFIXES | {INF_SUFFIX}))
    raise PreconditionError(f"Unsupported input file type: {archive.name} (expected one of {supported})")


@dataclass(frozen=True)
class PackageOutcome:
    group: GroupPlan
    package: PackagePlan
    success: bool
    message: str
    export: ExportResult | None = None


@dataclass
class BackupResult:
    strategy: GroupStrategy
    backup_dir: Path | None
    dry_run: bool
    plans: list[GroupPlan] = field(default_factory=list)
    outcomes: list[PackageOutcome] = field(default_factory=list)
    skipped_records: int = 0

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def exported_plans(self) -> list[GroupPlan]:
        """The plan restricted to packages whose export succeeded."""
        ok = {(outcome.group.key, outcome.package.identity) for outcome in self.outcomes if outcome.success}
        exported: list[GroupPlan] = []
        for plan in self.plans:
            packages = tuple(package for package in plan.packages if (plan.key, package.identity) in ok)
            if packages:
                exported.append(GroupPlan(plan.key, plan.folder, packages))
        return exported


@dataclass
class ScanResult:
    source: Path
    strategy: GroupStrategy
    files: list[Path]
    parsed: list[ParsedFile]
    failures: list[ParseFailure]
    groups: list[DriverGroup]
    output_dir: Path | None = None

    @property
    def records(self) -> list[DriverRecord]:
        return [record for parsed in self.parsed for record in parsed.records]


class DriverBackupService:
    def __init__(
        self,
        *,
        metadata_source: DriverMetadataSource | None = None,
        exporter: PackageExporter | None = None,
        parser: InfParser | None = None,
        command_runner: CommandRunner | None = None,
        seven_zip: SevenZipExtractor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._runner = command_runner or SubprocessRunner()
        self._source = metadata_source or PowerShellDriverSource(command_runner=self._runner)
        self._exporter = exporter or PnPUtilExporter(command_runner=self._runner)
        self._parser = parser or InfParser()
        self._seven_zip = seven_zip
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def collect(self) -> list[DriverRecord]:
        """Installed drivers minus in-box (Microsoft-provided) ones."""
        records = self._source.list_drivers()
        third_party = [record for record in records if not is_inbox_provider(record.provider_name)]
        logger.info("Found %d driver(s), %d from third-party providers", len(records), len(third_party))
        return third_party

    def backup(
        self,
        records: Iterable[DriverRecord],
        output_root: Path,
        *,
        strategy: GroupStrategy = GroupStrategy.CLASS_PACKAGE,
        dry_run: bool = False,
    ) -> BackupResult:
        exportable: list[DriverRecord] = []
        skipped = 0
        for record in records:
            if record.is_exportable:
                exportable.append(record)
                continue
            skipped += 1
            if record.inf_identity:
                logger.debug("Skipping non-OEM INF: %s", record.inf_identity)

        plans = plan_backup(exportable, strategy)
        backup_dir: Path | None = None
        if not dry_run:
            stamp = self._clock().strftime(OUTPUTS.backup_dir_timestamp)
            backup_dir = Path(output_root) / f"{OUTPUTS.backup_dir_prefix}{stamp}"
            self._make_dir(backup_dir)
        result = BackupResult(strategy=strategy, backup_dir=backup_dir, dry_run=dry_run, plans=plans, skipped_records=skipped)

        for plan in plans:
            logger.debug("Processing group %s (%d package(s))", plan.label, len(plan.packages))
            for package in plan.packages:
                result.outcomes.append(self._export_package(plan, package, backup_dir))

        if backup_dir is not None:
            exported = result.exported_plans()
            self._write(backup_dir / OUTPUTS.backup_csv, render_backup_csv(exported))
            self._write(backup_dir / OUTPUTS.backup_summary, render_backup_summary(exported, strategy, self._clock()))

        logger.info("Successfully exported: %d driver package(s)", result.succeeded)
        if result.failed:
            logger.warning("Failed to export: %d driver package(s)", result.failed)
        return result

    def _export_package(self, plan: GroupPlan, package: PackagePlan, backup_dir: Path | None) -> PackageOutcome:
        logger.debug(
            "Package %s: %s (%d device(s))", package.identity, plan.package_path(package), len(package.records)
        )
        if backup_dir is None:
            return PackageOutcome(plan, package, True, "Dry run")

        relative = plan.package_path(package)
        destination = backup_dir / plan.folder / package.folder
        if any(token in relative for token in IMMUTABLE_CONFIG.export.unsafe_path_tokens):
            logger.error("Skipping export due to unsafe path: %s", destination)
            return PackageOutcome(plan, package, False, "Unsafe destination path")
        try:
            self._make_dir(destination)
        except DriverBackupError as exc:
            logger.error("%s", exc)
            return PackageOutcome(plan, package, False, ExportFailureKind.INVALID_PATH.advice)

        logger.debug("Exporting %s to %s", package.identity, destination)
        export = self._exporter.export(package.identity, destination)
        if export.success:
            self._write(destination / OUTPUTS.package_csv, render_package_csv(package.records))
            logger.debug("Exported %s", package.identity)
            return PackageOutcome(plan, package, True, "Exported", export)

        logger.error("Failed to export %s (exit code %d)", package.identity, export.returncode)
        if export.stdout.strip():
            logger.error("  stdout: %s", export.stdout.strip())
        if export.stderr.strip():
            logger.error("  stderr: %s", export.stderr.strip())
        message = export.failure.advice if export.failure else f"Export failed with exit code {export.returncode}"
        if export.failure:
            logger.warning("  -> %s", message)
        return PackageOutcome(plan, package, False, message, export)

    def scan(
        self,
        root: Path,
        *,
        strategy: GroupStrategy = GroupStrategy.CLASS_PACKAGE,
        output_dir: Path | None = None,
    ) -> ScanResult:
        root = Path(root)
        if not root.exists():
            raise PreconditionError(f"Input path not found: {root}")
        if root.is_file() and root.suffix.lower() != INF_SUFFIX:
            raise PreconditionError(f"Unsupported input file type: {root.name}")
        files = discover_inf_files(root)
        if not files:
            raise PreconditionError(f"No INF files found under {root}")
        return self._scan_files(root, files, strategy, output_dir)

    def inspect(
        self,
        archive: Path,
        *,
        strategy: GroupStrategy = GroupStrategy.CLASS_PACKAGE,
        output_dir: Path | None = None,
    ) -> ScanResult:
        archive = Path(archive)
        if not archive.is_file():
            raise PreconditionError(f"Input file not found: {archive}")
        if archive.suffix.lower() == INF_SUFFIX:
            return self.scan(archive, strategy=strategy, output_dir=output_dir)
        extractor = select_extractor(archive, seven_zip=self._seven_zip)
        with tempfile.TemporaryDirectory(prefix="driver_inspect_") as temp_dir:
            extract_root = Path(temp_dir)
            logger.info("Extracting %s", archive)
            extractor.extract(archive, extract_root)
            files = discover_inf_files(extract_root)
            if not files:
                raise PreconditionError(f"No INF files found in {archive.name}")
            return self._scan_files(archive, files, strategy, output_dir)

    def _scan_files(
        self,
        source: Path,
        files: list[Path],
        strategy: GroupStrategy,
        output_dir: Path | None,
    ) -> ScanResult:
        logger.info("Parsing %d INF file(s) from %s", len(files), source)
        parsed, failures = self._parser.parse_many(files)
        for failure in failures:
            logger.warning("Could not parse %s: %s", failure.path, failure.reason)
        records = [record for item in parsed for record in item.records]
        groups = group_records(records, strategy)
        result = ScanResult(source, strategy, files, parsed, failures, groups)
        if output_dir is not None:
            self.write_scan_outputs(result, Path(output_dir))
        logger.info("Found %d driver record(s) in %d group(s)", len(records), len(groups))
        return result

    def write_scan_outputs(self, result: ScanResult, output_dir: Path) -> None:
        validate_output_directory(output_dir)
        self._write(output_dir / OUTPUTS.scan_csv, render_scan_csv(result.records))
        report = render_scan_report(
            result.groups,
            result.strategy,
            self._clock(),
            files_scanned=len(result.files),
            failures=result.failures,
        )
        self._write(output_dir / OUTPUTS.scan_report, report)
        result.output_dir = output_dir

    def _make_dir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DriverBackupError(f"Failed to create directory: {path}: {exc}") from exc

    def _write(self, path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8", newline="")
        except OSError as exc:
            raise DriverBackupError(f"Failed to write {path}: {exc}") from exc
        logger.debug("Created %s", path)
