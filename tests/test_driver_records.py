from __future__ import annotations

import pytest

from services.driver_records import (
    DriverRecord,
    display,
    is_inbox_provider,
    normalize_driver_date,
    normalize_package_identity,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("20230115", "2023-01-15"),
        ("20230115000000.******+000", "2023-01-15"),
        ("01/15/2023", "01/15/2023"),
        ("20231315", "20231315"),
        ("20230100", "20230100"),
        ("2023011", "2023011"),
        ("", ""),
        (None, "Unknown"),
    ],
)
def test_normalize_driver_date(raw: str | None, expected: str) -> None:
    assert normalize_driver_date(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("oem12.inf", "oem12.inf"),
        ("OEM12.INF", "oem12.inf"),
        ("oem_a.b.inf", "oem_a.b.inf"),
        ("usbport.inf", None),
        ("oem12.inf.bak", None),
        ("oem 12.inf", None),
        ("oem12\\..\\x.inf", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_package_identity(raw: str | None, expected: str | None) -> None:
    assert normalize_package_identity(raw) == expected


def test_from_wmi_maps_fields_and_blanks() -> None:
    record = DriverRecord.from_wmi(
        {
            "DeviceName": "Realtek Audio",
            "Description": "  ",
            "DeviceClass": "MEDIA",
            "ClassGuid": "{4d36e96c-e325-11ce-bfc1-08002be10318}",
            "DriverVersion": "6.0.9235.1",
            "DriverDate": "20211014000000.******+000",
            "DriverProviderName": "Realtek Semiconductor Corp.",
            "InfName": "OEM42.inf",
            "HardwareID": "HDAUDIO\\FUNC_01&VEN_10EC&DEV_0295",
            "DeviceID": None,
        }
    )
    assert record.device_name == "Realtek Audio"
    assert record.description is None
    assert record.device_id is None
    assert record.manufacturer is None
    assert record.package_identity == "oem42.inf"
    assert record.is_exportable
    assert record.normalized_date == "2021-10-14"


def test_display_name_falls_back_to_description() -> None:
    assert DriverRecord(description="Generic").display_name == "Generic"
    assert DriverRecord(device_name="Named", description="Generic").display_name == "Named"
    assert DriverRecord().display_name is None


def test_inbox_provider_detection() -> None:
    assert is_inbox_provider("Microsoft")
    assert is_inbox_provider("MICROSOFT Corporation")
    assert not is_inbox_provider("Intel")
    assert not is_inbox_provider(None)


def test_display_substitutes_unknown() -> None:
    assert display(None) == "Unknown"
    assert display("") == "Unknown"
    assert display("x") == "x"
