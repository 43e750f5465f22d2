"""CSV and plain-text renderers for backup and scan results."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from services.driver_records import DriverRecord, display
from services.grouping import DriverGroup, GroupPlan, GroupStrategy, count_grouped, count_planned
from services.inf_parser import ParseFailure

DRIVER_PACKAGE_CSV_HEADER = (
    "Device Name",
    "Driver Version",
    "Driver Date",
    "Hardware ID",
    "Device ID",
    "INF Name",
    "Description",
    "Provider",
    "Device Class",
    "Class GUID",
)
BACKUP_SUMMARY_CSV_HEADER = DRIVER_PACKAGE_CSV_HEADER + ("Folder Name",)
SCAN_SUMMARY_CSV_HEADER = (
    "INF File",
    "Device Name",
    "Hardware ID",
    "Manufacturer",
    "Provider",
    "Device Class",
    "Class GUID",
    "Driver Version",
    "Driver Date",
    "Catalog File",
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def escape_csv_field(value: str) -> str:
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def _csv_line(values: Sequence[str | None]) -> str:
    return ",".join(escape_csv_field(display(value)) for value in values) + "\n"


def _package_row(record: DriverRecord) -> list[str | None]:
    return [
        record.device_name,
        record.driver_version,
        record.normalized_date,
        record.hardware_id,
        record.device_id,
        record.inf_identity,
        record.description,
        record.provider_name,
        record.device_class,
        record.class_guid,
    ]


def _scan_row(record: DriverRecord) -> list[str | None]:
    return [
        record.inf_identity,
        record.display_name,
        record.hardware_id,
        record.manufacturer,
        record.provider_name,
        record.device_class,
        record.class_guid,
        record.driver_version,
        record.normalized_date,
        record.catalog_file,
    ]


def render_package_csv(records: Iterable[DriverRecord]) -> str:
    lines = [_csv_line(DRIVER_PACKAGE_CSV_HEADER)]
    lines.extend(_csv_line(_package_row(record)) for record in records)
    return "".join(lines)


def render_backup_csv(plans: Iterable[GroupPlan]) -> str:
    lines = [_csv_line(BACKUP_SUMMARY_CSV_HEADER)]
    for plan in plans:
        for package in plan.packages:
            folder = plan.package_path(package)
            lines.extend(_csv_line(_package_row(record) + [folder]) for record in package.records)
    return "".join(lines)


def render_scan_csv(records: Iterable[DriverRecord]) -> str:
    lines = [_csv_line(SCAN_SUMMARY_CSV_HEADER)]
    lines.extend(_csv_line(_scan_row(record)) for record in records)
    return "".join(lines)


def _heading(text: str) -> list[str]:
    return [text, "=" * len(text), ""]


def render_backup_summary(plans: Sequence[GroupPlan], strategy: GroupStrategy, generated_at: datetime) -> str:
    """Narrative summary of exported packages; packages share one running counter."""
    lines = [
        "Driver Export Summary",
        f"Generated: {generated_at.strftime(TIMESTAMP_FORMAT)}",
        f"Total drivers exported: {count_planned(plans)}",
        "",
    ]
    lines.extend(_heading(f"Drivers by {strategy.title}:"))

    counter = 1
    for plan in plans:
        lines.append(f"=== {plan.label} ({len(plan.packages)} packages) ===")
        lines.append("")
        for package in plan.packages:
            primary = package.primary
            lines.append(f"{counter}. {package.identity} ({len(package.records)} devices in package):")
            lines.append(f"   Folder: {plan.package_path(package)}")
            lines.append(f"   Provider: {display(primary.provider_name)}")
            lines.append(f"   Version: {display(primary.driver_version)}")
            lines.append(f"   Date: {display(primary.normalized_date)}")
            lines.append("")
            lines.append("   Devices in this package:")
            for index, record in enumerate(package.records, start=1):
                lines.append(f"   {index}. {display(record.device_name)}")
                lines.append(f"      Hardware ID: {display(record.hardware_id)}")
                lines.append(f"      Device ID: {display(record.device_id)}")
                lines.append(f"      Description: {display(record.description)}")
            lines.append("")
            counter += 1
        lines.append("")
    return "\n".join(lines)


def render_scan_report(
    groups: Sequence[DriverGroup],
    strategy: GroupStrategy,
    generated_at: datetime,
    *,
    files_scanned: int,
    failures: Sequence[ParseFailure] = (),
) -> str:
    """Narrative scan report; records are numbered globally across groups."""
    lines = [
        "Driver Package Scan Report",
        f"Generated: {generated_at.strftime(TIMESTAMP_FORMAT)}",
        f"Files scanned: {files_scanned}",
        f"Files failed: {len(failures)}",
        f"Records found: {count_grouped(groups)}",
        f"Groups: {len(groups)}",
        "",
    ]
    lines.extend(_heading(f"Records by {strategy.title}:"))

    counter = 1
    for group in groups:
        lines.append(f"=== {group.label} ({len(group)} records) ===")
        lines.append("")
        for record in group.records:
            lines.append(f"{counter}. {display(record.display_name)}")
            lines.append(f"   INF: {display(record.inf_identity)}")
            lines.append(f"   Hardware ID: {display(record.hardware_id)}")
            lines.append(f"   Manufacturer: {display(record.manufacturer)}")
            lines.append(f"   Provider: {display(record.provider_name)}")
            lines.append(f"   Version: {display(record.driver_version)}")
            lines.append(f"   Date: {display(record.normalized_date)}")
            lines.append(f"   Catalog: {display(record.catalog_file)}")
            lines.append("")
            counter += 1

    if failures:
        lines.append("Parse failures:")
        for failure in failures:
            lines.append(f"   {failure.path}: {failure.reason}")
        lines.append("")
    return "\n".join(lines)
