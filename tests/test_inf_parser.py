from __future__ import annotations

import codecs
from pathlib import Path

import pytest

from services.errors import InfParseError
from services.inf_parser import (
    InfParser,
    StringTable,
    build_version_block,
    classify_sections,
    decode_inf_bytes,
    detect_encoding,
    discover_inf_files,
    is_recognized_hardware_id,
    iter_section_lines,
    parse_device_line,
    strip_inline_comment,
)

ACME_INF = """\
[Version]
Signature="$WINDOWS NT$"
Class=DiskDrive
ClassGuid={4d36e967-e325-11ce-bfc1-08002be10318}
Provider=%ProviderName%
DriverVer=01/15/2023,10.0.1.5
CatalogFile=acme.cat

[Manufacturer]
ACME=Mfg001,NTamd64

[Mfg001.NTamd64]
%DiskName%=Install,PCI\\VEN_0001&DEV_0002

[Strings]
ProviderName="ACME Corp"
DiskName="ACME Disk"
"""


def test_detect_encoding_by_bom() -> None:
    assert detect_encoding(codecs.BOM_UTF16_LE + "x".encode("utf-16-le")) == "utf-16-le"
    assert detect_encoding(codecs.BOM_UTF16_BE + "x".encode("utf-16-be")) == "utf-16-be"
    assert detect_encoding(codecs.BOM_UTF8 + b"x") == "utf-8-sig"
    assert detect_encoding(b"plain ascii") == "utf-8"
    assert detect_encoding(b"caf\xe9") == "latin-1"


def test_decode_strips_bom_and_falls_back_to_latin1() -> None:
    assert decode_inf_bytes(codecs.BOM_UTF16_LE + "[Version]".encode("utf-16-le")) == "[Version]"
    assert decode_inf_bytes(codecs.BOM_UTF8 + b"[Strings]") == "[Strings]"
    assert decode_inf_bytes(b"caf\xe9") == "café"


def test_decode_never_raises_on_truncated_utf16() -> None:
    text = decode_inf_bytes(codecs.BOM_UTF16_LE + b"[\x00V")
    assert text.startswith("[")


def test_strip_inline_comment_respects_quotes() -> None:
    assert strip_inline_comment('Name="a;b" ; trailing') == 'Name="a;b" '
    assert strip_inline_comment("Class=Net ; network") == "Class=Net "


def test_iter_section_lines_lowercases_headers_and_skips_comments() -> None:
    text = "orphan=1\n; comment\n\n[VeRsIoN]\nClass=Net\n  [Strings]  \nA=b\n"
    assert list(iter_section_lines(text)) == [
        ("", "orphan=1"),
        ("version", "Class=Net"),
        ("strings", "A=b"),
    ]


def test_string_table_base_section_wins_over_localized() -> None:
    lines = [
        ("strings.0409", 'Disk="Localized Disk"'),
        ("strings.0409", 'Extra="Only Localized"'),
        ("strings", 'Disk="Base Disk"'),
    ]
    table = StringTable.from_lines(lines)
    assert table.resolve("%disk%") == "Base Disk"
    assert table.resolve("%EXTRA%") == "Only Localized"
    assert "DISK" in table
    assert len(table) == 2


def test_string_table_unknown_token_is_returned_unchanged() -> None:
    table = StringTable({"known": "value"})
    assert table.resolve("%Missing%") == "%Missing%"
    assert table.resolve("literal") == "literal"
    assert table.resolve("%") == "%"


def test_classify_sections_handles_prefixes_and_case() -> None:
    manufacturers = {"ACME": "Mfg001,NTamd64", "Contoso": "CONTOSO"}
    sections = ["version", "mfg001.ntamd64", "mfg001", "contoso.ntx86", "cont", "unrelated", "strings", ""]
    membership = classify_sections(manufacturers, sections)
    assert list(membership) == ["mfg001.ntamd64", "mfg001", "contoso.ntx86", "cont"]
    assert membership["mfg001.ntamd64"] == "ACME"
    assert membership["contoso.ntx86"] == "Contoso"
    assert membership["cont"] is None


def test_classify_sections_is_independent_of_parser_state() -> None:
    manufacturers = {"A": "models"}
    first = classify_sections(manufacturers, ["models.ntamd64"])
    second = classify_sections(manufacturers, ["models.ntamd64"])
    assert first == second == {"models.ntamd64": "A"}


def test_parse_device_line_takes_second_field_as_hardware_id() -> None:
    assert parse_device_line("%Dev%=Install, USB\\VID_1234&PID_0001, USB\\Class_03") == (
        "%Dev%",
        "USB\\VID_1234&PID_0001",
    )
    assert parse_device_line("%Dev%=Install") is None
    assert parse_device_line("no equals sign") is None


def test_hardware_id_filter() -> None:
    assert is_recognized_hardware_id("pci\\ven_8086&dev_1234")
    assert is_recognized_hardware_id("{guid}\\VID_045E")
    assert not is_recognized_hardware_id("*PNP0A03")
    assert not is_recognized_hardware_id("SCSI\\DiskVendor")
    assert is_recognized_hardware_id("SCSI\\DiskVendor", ("SCSI\\",), ())


def test_acme_scenario_builds_single_record() -> None:
    parsed = InfParser().parse_text(ACME_INF, "acme.inf")
    assert len(parsed.records) == 1
    record = parsed.records[0]
    assert record.device_name == "ACME Disk"
    assert record.hardware_id == "PCI\\VEN_0001&DEV_0002"
    assert record.manufacturer == "ACME"
    assert record.provider_name == "ACME Corp"
    assert record.device_class == "DiskDrive"
    assert record.class_guid == "{4d36e967-e325-11ce-bfc1-08002be10318}"
    assert record.catalog_file == "acme.cat"
    assert record.inf_identity == "acme.inf"


def test_driver_ver_fields_are_kept_verbatim() -> None:
    record = InfParser().parse_text(ACME_INF, "acme.inf").records[0]
    assert record.driver_date == "01/15/2023"
    assert record.driver_version == "10.0.1.5"


def test_driver_ver_without_version() -> None:
    text = ACME_INF.replace("DriverVer=01/15/2023,10.0.1.5", "DriverVer=01/15/2023")
    record = InfParser().parse_text(text, "acme.inf").records[0]
    assert record.driver_date == "01/15/2023"
    assert record.driver_version is None


def test_hardware_id_survives_parse_exactly() -> None:
    text = ACME_INF.replace("PCI\\VEN_0001&DEV_0002", "PCI\\VEN_1234&DEV_5678")
    record = InfParser().parse_text(text, "acme.inf").records[0]
    assert record.hardware_id == "PCI\\VEN_1234&DEV_5678"


def test_parsing_is_idempotent() -> None:
    parser = InfParser()
    assert parser.parse_text(ACME_INF, "acme.inf") == parser.parse_text(ACME_INF, "acme.inf")


def test_unresolved_description_token_is_kept() -> None:
    text = ACME_INF.replace('DiskName="ACME Disk"\n', "")
    record = InfParser().parse_text(text, "acme.inf").records[0]
    assert record.device_name == "%DiskName%"


def test_unrecognized_hardware_ids_are_dropped() -> None:
    text = ACME_INF.replace("PCI\\VEN_0001&DEV_0002", "*PNP0501")
    assert InfParser().parse_text(text, "acme.inf").records == ()


def test_extra_bus_prefixes_extend_the_filter() -> None:
    text = ACME_INF.replace("PCI\\VEN_0001&DEV_0002", "SCSI\\DiskACME")
    assert InfParser().parse_text(text, "acme.inf").records == ()
    parser = InfParser.with_extra_prefixes(["scsi", " ", "PCI\\"])
    assert parser.bus_prefixes.count("PCI\\") == 1
    assert "SCSI\\" in parser.bus_prefixes
    assert len(parser.parse_text(text, "acme.inf").records) == 1


def test_empty_descriptor_yields_no_records() -> None:
    parsed = InfParser().parse_text("", "empty.inf")
    assert parsed.records == ()
    assert parsed.version.driver_version is None


def test_parse_bytes_handles_utf16(tmp_path: Path) -> None:
    path = tmp_path / "wide.inf"
    path.write_bytes(codecs.BOM_UTF16_LE + ACME_INF.encode("utf-16-le"))
    parsed = InfParser().parse_file(path)
    assert parsed.records[0].device_name == "ACME Disk"
    assert parsed.name == "wide.inf"


def test_parse_file_wraps_read_errors(tmp_path: Path) -> None:
    with pytest.raises(InfParseError) as excinfo:
        InfParser().parse_file(tmp_path / "missing.inf")
    assert excinfo.value.path == tmp_path / "missing.inf"


def test_parse_many_collects_failures(tmp_path: Path) -> None:
    good = tmp_path / "good.inf"
    good.write_text(ACME_INF, encoding="utf-8")
    parsed, failures = InfParser().parse_many([good, tmp_path / "gone.inf"])
    assert [item.name for item in parsed] == ["good.inf"]
    assert [failure.path.name for failure in failures] == ["gone.inf"]
    assert failures[0].reason


def test_discover_inf_files_is_recursive_sorted_and_case_insensitive(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "a" / "deep").mkdir(parents=True)
    (tmp_path / "b" / "Second.INF").write_text("", encoding="utf-8")
    (tmp_path / "a" / "deep" / "first.inf").write_text("", encoding="utf-8")
    (tmp_path / "a" / "notes.txt").write_text("", encoding="utf-8")
    found = discover_inf_files(tmp_path)
    assert [path.name for path in found] == ["first.inf", "Second.INF"]
    assert discover_inf_files(tmp_path / "a" / "deep" / "first.inf") == [tmp_path / "a" / "deep" / "first.inf"]
    assert discover_inf_files(tmp_path / "a" / "notes.txt") == []


def test_undecorated_manufacturer_section() -> None:
    text = (
        "[Strings]\n"
        'DiskName="ACME Disk"\n'
        "[Manufacturer]\n"
        "ACME=Mfg001\n"
        "[Mfg001]\n"
        "%DiskName%=Install,PCI\\VEN_0001&DEV_0002\n"
    )
    records = InfParser().parse_text(text, "acme.inf").records
    assert [(record.device_name, record.hardware_id) for record in records] == [
        ("ACME Disk", "PCI\\VEN_0001&DEV_0002")
    ]


def test_file_without_manufacturers_has_no_device_sections() -> None:
    parsed = InfParser().parse_text("[Models]\n%Dev%=Install,PCI\\VEN_1&DEV_2\n", "bare.inf")
    assert parsed.device_sections == ()
    assert parsed.records == ()


def test_duplicate_version_keys_keep_the_last_value() -> None:
    text = (
        "[Version]\n"
        "Class=Net\n"
        "DriverVer=01/01/2020,1.0\n"
        "Class=Display\n"
        "DriverVer=02/02/2021,2.0\n"
    )
    version = build_version_block(iter_section_lines(text), StringTable())
    assert version.device_class == "Display"
    assert version.driver_date == "02/02/2021"
    assert version.driver_version == "2.0"


def test_repeated_section_headers_are_merged() -> None:
    text = (
        "[Manufacturer]\n"
        "Vendor=M\n"
        "[M]\n"
        "First=Install,PCI\\VEN_0001&DEV_0001\n"
        "[Strings]\n"
        "Unused=x\n"
        "[m]\n"
        "Second=Install,USB\\VID_0002&PID_0002\n"
    )
    records = InfParser().parse_text(text, "vendor.inf").records
    assert [(record.device_name, record.hardware_id) for record in records] == [
        ("First", "PCI\\VEN_0001&DEV_0001"),
        ("Second", "USB\\VID_0002&PID_0002"),
    ]


def test_classify_sections_overlapping_targets_pick_first_manufacturer() -> None:
    assert classify_sections({"A": "Intel", "B": "IntelX"}, ["intelx.ntamd64"]) == {"intelx.ntamd64": "A"}
    assert classify_sections({"B": "IntelX", "A": "Intel"}, ["intelx.ntamd64"]) == {"intelx.ntamd64": "B"}
