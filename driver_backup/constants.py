"""Immutable settings shared by the backup, scan and report services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class HardwareIdRules:
    bus_prefixes: Tuple[str, ...]
    vendor_markers: Tuple[str, ...]


@dataclass(frozen=True)
class OutputNames:
    package_csv: str
    backup_csv: str
    backup_summary: str
    scan_csv: str
    scan_report: str
    backup_dir_prefix: str
    backup_dir_timestamp: str


@dataclass(frozen=True)
class ExportSettings:
    executable: str
    inbox_provider_marker: str
    unsafe_path_tokens: Tuple[str, ...]


@dataclass(frozen=True)
class ImmutableConfig:
    hardware_ids: HardwareIdRules
    outputs: OutputNames
    export: ExportSettings
    label_max_length: int
    unknown_value: str


IMMUTABLE_CONFIG = ImmutableConfig(
    hardware_ids=HardwareIdRules(
        bus_prefixes=("PCI\\", "USB\\", "HDAUDIO\\", "ACPI\\", "HID\\", "SWD\\", "ROOT\\"),
        vendor_markers=("VEN_", "DEV_", "VID_", "PID_"),
    ),
    outputs=OutputNames(
        package_csv="driver_info.csv",
        backup_csv="all_drivers.csv",
        backup_summary="driver_backup_summary.txt",
        scan_csv="scan_summary.csv",
        scan_report="scan_report.txt",
        backup_dir_prefix="drivers_",
        backup_dir_timestamp="%Y%m%d_%H%M%S",
    ),
    export=ExportSettings(
        executable="pnputil",
        inbox_provider_marker="microsoft",
        unsafe_path_tokens=("..", "%"),
    ),
    label_max_length=100,
    unknown_value="Unknown",
)
