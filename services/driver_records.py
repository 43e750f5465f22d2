"""Driver record model shared by the parser, grouping and report services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from driver_backup.constants import IMMUTABLE_CONFIG

UNKNOWN = IMMUTABLE_CONFIG.unknown_value


@dataclass(frozen=True)
class DriverRecord:
    device_name: str | None = None
    description: str | None = None
    device_class: str | None = None
    class_guid: str | None = None
    driver_version: str | None = None
    driver_date: str | None = None
    provider_name: str | None = None
    hardware_id: str | None = None
    device_id: str | None = None
    inf_identity: str | None = None
    catalog_file: str | None = None
    manufacturer: str | None = None

    @property
    def normalized_date(self) -> str:
        return normalize_driver_date(self.driver_date)

    @property
    def package_identity(self) -> str | None:
        return normalize_package_identity(self.inf_identity)

    @property
    def is_exportable(self) -> bool:
        return self.package_identity is not None

    @property
    def display_name(self) -> str | None:
        return self.device_name or self.description

    @classmethod
    def from_wmi(cls, item: Mapping[str, Any]) -> DriverRecord:
        """Build a record from one ``Win32_PnPSignedDriver`` JSON object."""

        def _text(key: str) -> str | None:
            value = item.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            device_name=_text("DeviceName"),
            description=_text("Description"),
            device_class=_text("DeviceClass"),
            class_guid=_text("ClassGuid"),
            driver_version=_text("DriverVersion"),
            driver_date=_text("DriverDate"),
            provider_name=_text("DriverProviderName"),
            hardware_id=_text("HardwareID"),
            device_id=_text("DeviceID"),
            inf_identity=_text("InfName"),
            manufacturer=_text("Manufacturer"),
        )


def normalize_driver_date(value: str | None) -> str:
    """Render ``YYYYMMDD...`` dates as ``YYYY-MM-DD``; other shapes pass through.

    WMI reports driver dates as CIM datetimes (``20230115000000.******+000``),
    so only the leading eight characters are inspected.
    """
    if value is None:
        return UNKNOWN
    head = value[:8]
    if len(head) == 8 and head.isascii() and head.isdigit():
        year, month, day = head[0:4], head[4:6], head[6:8]
        if 1 <= int(month) <= 12 and 1 <= int(day) <= 31:
            return f"{year}-{month}-{day}"
    return value


def normalize_package_identity(inf_name: str | None) -> str | None:
    """Return the lowercased published package name (``oemNN.inf``) or ``None``."""
    if not inf_name:
        return None
    lowered = inf_name.strip().lower()
    if not (lowered.startswith("oem") and lowered.endswith(".inf")):
        return None
    if not all((ch.isascii() and ch.isalnum()) or ch in "._" for ch in lowered):
        return None
    return lowered


def is_inbox_provider(provider: str | None) -> bool:
    if not provider:
        return False
    return IMMUTABLE_CONFIG.export.inbox_provider_marker in provider.lower()


def display(value: str | None) -> str:
    return value if value else UNKNOWN
