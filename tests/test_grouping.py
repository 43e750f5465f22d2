from __future__ import annotations

import pytest

from services.driver_records import DriverRecord
from services.grouping import (
    GroupStrategy,
    count_grouped,
    count_planned,
    group_records,
    key_extractor_for,
    plan_backup,
    sanitize_label,
)


def _record(**overrides: str | None) -> DriverRecord:
    values: dict[str, str | None] = {
        "device_name": "Ethernet Adapter",
        "device_class": "Net",
        "class_guid": "{4d36e972-e325-11ce-bfc1-08002be10318}",
        "driver_version": "1.2.3.4",
        "driver_date": "20230115",
        "provider_name": "Intel",
        "hardware_id": "PCI\\VEN_8086&DEV_15F3",
        "inf_identity": "oem12.inf",
    }
    values.update(overrides)
    return DriverRecord(**values)


SAMPLE = [
    _record(),
    _record(device_name="Ethernet Adapter #2", hardware_id="PCI\\VEN_8086&DEV_15F4"),
    _record(device_class="Display", inf_identity="oem3.inf", driver_version="31.0.101"),
    _record(device_class=None, inf_identity="OEM7.inf", class_guid=None),
    _record(device_class="Net", inf_identity=None),
]


@pytest.mark.parametrize("strategy", list(GroupStrategy))
def test_grouping_preserves_totals(strategy: GroupStrategy) -> None:
    groups = group_records(SAMPLE, strategy)
    assert count_grouped(groups) == len(SAMPLE)
    assert [group.key for group in groups] == sorted(group.key for group in groups)


def test_class_package_keys_and_unknown_buckets() -> None:
    groups = group_records(SAMPLE, GroupStrategy.CLASS_PACKAGE)
    keys = [group.key for group in groups]
    assert ("Net", "oem12.inf") in keys
    assert ("Unknown_Class", "oem7.inf") in keys
    assert ("Net", "Unknown_Package") in keys
    net = next(group for group in groups if group.key == ("Net", "oem12.inf"))
    assert [record.device_name for record in net.records] == ["Ethernet Adapter", "Ethernet Adapter #2"]
    assert net.label == "Net / oem12.inf"


def test_guid_version_strategy_uses_unknown_guid_bucket() -> None:
    keys = [group.key for group in group_records(SAMPLE, GroupStrategy.GUID_VERSION)]
    assert ("Unknown_GUID", "1.2.3.4") in keys


def test_key_extractor_can_exclude_dimensions() -> None:
    extract = key_extractor_for(GroupStrategy.CLASS_PACKAGE, exclude=("package",))
    assert extract(SAMPLE[0]) == ("Net",)


def test_parse_strategy() -> None:
    assert GroupStrategy.parse(" Class-Package ") is GroupStrategy.CLASS_PACKAGE
    assert GroupStrategy.parse(GroupStrategy.VERSION) is GroupStrategy.VERSION
    with pytest.raises(ValueError, match="expected one of"):
        GroupStrategy.parse("vendor")


@pytest.mark.parametrize(
    "parts",
    [
        ("Intel(R) Ethernet", "Intel", "1.2.3", "2023-01-15"),
        ("a/b\\c:d*e?f\"g<h>i|j",),
        ("",),
        (None, None),
        ("___...   ",),
        ("x" * 300,),
        ("Réseau", "Société"),
        (),
    ],
)
def test_sanitize_label_invariants(parts: tuple[str | None, ...]) -> None:
    label = sanitize_label(*parts)
    assert label
    assert len(label) <= 100
    assert all(ch.isalnum() or ch in " .-_()[]" for ch in label)
    assert not label.endswith(("_", " ", "."))


def test_sanitize_label_replaces_disallowed_characters() -> None:
    assert sanitize_label("a/b:c") == "a_b_c"
    assert sanitize_label("Device", None) == "Device_Unknown"
    assert sanitize_label("???") == "Unknown"


def test_shared_package_is_exported_once() -> None:
    plans = plan_backup(SAMPLE[:2], GroupStrategy.CLASS_PACKAGE)
    assert len(plans) == 1
    assert len(plans[0].packages) == 1
    package = plans[0].packages[0]
    assert package.identity == "oem12.inf"
    assert len(package.records) == 2
    assert plans[0].folder == "Net"
    assert plans[0].package_path(package) == "Net/Ethernet Adapter_Intel_1.2.3.4_2023-01-15"


def test_record_without_class_lands_in_unknown_class_folder() -> None:
    plans = plan_backup([_record(device_class=None)], GroupStrategy.CLASS_PACKAGE)
    assert plans[0].key == ("Unknown_Class",)
    assert plans[0].folder == "Unknown_Class"


def test_plan_totals_match_input() -> None:
    exportable = [record for record in SAMPLE if record.is_exportable]
    for strategy in GroupStrategy:
        assert count_planned(plan_backup(exportable, strategy)) == len(exportable)


def test_package_label_collisions_get_distinct_folders() -> None:
    records = [_record(inf_identity="oem1.inf"), _record(inf_identity="oem2.inf")]
    plans = plan_backup(records, GroupStrategy.CLASS_PACKAGE)
    folders = [package.folder for package in plans[0].packages]
    assert len(set(folders)) == 2
    assert folders[1].endswith("(oem2)")


def test_package_labels_differing_only_in_case_get_distinct_folders() -> None:
    records = [
        _record(device_name="USB Hub", inf_identity="oem1.inf"),
        _record(device_name="USB HUB", inf_identity="oem2.inf"),
    ]
    plans = plan_backup(records, GroupStrategy.CLASS_PACKAGE)
    folders = [package.folder for package in plans[0].packages]
    assert len({folder.casefold() for folder in folders}) == 2
    assert folders[0].startswith("USB Hub_Intel")
    assert folders[1].endswith("(oem2)")


def test_version_strategy_groups_packages_by_version() -> None:
    plans = plan_backup(SAMPLE[:3], GroupStrategy.VERSION)
    assert [plan.key for plan in plans] == [("1.2.3.4",), ("31.0.101",)]
    assert plans[0].folder == "1.2.3.4"
