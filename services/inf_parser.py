"""Parser for driver package descriptors (INF files).

The format is line oriented: ``[section]`` headers, ``key=value`` lines,
``;`` comments and ``%token%`` placeholders resolved through the
``[Strings]`` section. Files are decoded through a fallback chain that never
fails, so a descriptor is only rejected when it cannot be read at all.
"""
from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Sequence

from driver_backup.constants import IMMUTABLE_CONFIG
from services.driver_records import DriverRecord
from services.errors import InfParseError

logger = logging.getLogger(__name__)

COMMENT_MARKER = ";"
VERSION_SECTION = "version"
MANUFACTURER_SECTION = "manufacturer"
STRINGS_SECTION = "strings"
RESERVED_SECTIONS = frozenset({VERSION_SECTION, MANUFACTURER_SECTION, STRINGS_SECTION})
INF_SUFFIX = ".inf"

ENCODING_UTF16_LE = "utf-16-le"
ENCODING_UTF16_BE = "utf-16-be"
ENCODING_UTF8_BOM = "utf-8-sig"
ENCODING_UTF8 = "utf-8"
ENCODING_LEGACY = "latin-1"

SectionLine = tuple[str, str]


def detect_encoding(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF16_LE):
        return ENCODING_UTF16_LE
    if data.startswith(codecs.BOM_UTF16_BE):
        return ENCODING_UTF16_BE
    if data.startswith(codecs.BOM_UTF8):
        return ENCODING_UTF8_BOM
    try:
        data.decode(ENCODING_UTF8)
    except UnicodeDecodeError:
        return ENCODING_LEGACY
    return ENCODING_UTF8


def decode_inf_bytes(data: bytes) -> str:
    """Decode descriptor bytes; lossy where needed, never raises."""
    encoding = detect_encoding(data)
    if encoding in (ENCODING_UTF16_LE, ENCODING_UTF16_BE):
        return data[len(codecs.BOM_UTF16_LE):].decode(encoding, errors="replace")
    if encoding == ENCODING_UTF8_BOM:
        return data[len(codecs.BOM_UTF8):].decode(ENCODING_UTF8, errors="replace")
    # Strict UTF-8 already succeeded in detect_encoding, and latin-1 maps every byte.
    return data.decode(encoding)


def strip_inline_comment(raw: str) -> str:
    """Drop a ``;`` comment that starts outside a quoted string."""
    out: list[str] = []
    in_quote = False
    for ch in raw:
        if ch == '"':
            in_quote = not in_quote
        elif ch == COMMENT_MARKER and not in_quote:
            break
        out.append(ch)
    return "".join(out)


def iter_section_lines(text: str) -> Iterator[SectionLine]:
    """Yield ``(section, line)`` pairs with lowercased section names.

    Lines before the first header carry an empty section name.
    """
    section = ""
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(COMMENT_MARKER):
            continue
        line = strip_inline_comment(line).strip()
        if not line:
            continue
        if len(line) >= 2 and line.startswith("[") and line.endswith("]"):
            section = line[1:-1].strip().lower()
            continue
        yield section, line


def split_key_value(line: str) -> tuple[str, str] | None:
    if "=" not in line:
        return None
    key, _, value = line.partition("=")
    return key.strip(), value.strip()


def unquote(value: str) -> str:
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    return text


class StringTable:
    """``%token%`` lookups built from the ``[Strings]`` section.

    Keys are matched case-insensitively. Localized ``[Strings.xxxx]`` sections
    only fill keys the base section does not define.
    """

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = {key.lower(): value for key, value in (values or {}).items()}

    @classmethod
    def from_lines(cls, lines: Iterable[SectionLine]) -> StringTable:
        base: dict[str, str] = {}
        localized: dict[str, str] = {}
        for section, line in lines:
            if section == STRINGS_SECTION:
                target = base
            elif section.startswith(STRINGS_SECTION + "."):
                target = localized
            else:
                continue
            pair = split_key_value(line)
            if pair is None or not pair[0]:
                continue
            key, value = pair
            lowered = key.lower()
            if target is localized:
                localized.setdefault(lowered, unquote(value))
            else:
                base[lowered] = unquote(value)
        merged = dict(localized)
        merged.update(base)
        return cls(merged)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._values

    def get(self, key: str) -> str | None:
        return self._values.get(key.lower())

    def resolve(self, value: str) -> str:
        """Resolve a ``%token%`` reference; unknown tokens come back unchanged."""
        candidate = value.strip()
        if len(candidate) >= 2 and candidate.startswith("%") and candidate.endswith("%"):
            resolved = self._values.get(candidate[1:-1].lower())
            return resolved if resolved is not None else candidate
        return value


@dataclass(frozen=True)
class VersionBlock:
    driver_version: str | None = None
    driver_date: str | None = None
    device_class: str | None = None
    class_guid: str | None = None
    provider: str | None = None
    catalog_file: str | None = None


def parse_driver_ver(value: str) -> tuple[str | None, str | None]:
    """Split ``DATE,VERSION`` verbatim; a missing version yields ``None``."""
    date, _, version = value.partition(",")
    return (unquote(date) or None, unquote(version) or None)


def build_version_block(lines: Iterable[SectionLine], strings: StringTable) -> VersionBlock:
    values: dict[str, str | None] = {}
    for section, line in lines:
        if section != VERSION_SECTION:
            continue
        pair = split_key_value(line)
        if pair is None:
            continue
        key, value = pair[0].lower(), pair[1]
        if key == "driverver":
            values["driver_date"], values["driver_version"] = parse_driver_ver(value)
        elif key == "class":
            values["device_class"] = unquote(value) or None
        elif key == "classguid":
            values["class_guid"] = unquote(value) or None
        elif key == "provider":
            values["provider"] = strings.resolve(unquote(value)) or None
        elif key == "catalogfile" or key.startswith("catalogfile."):
            values["catalog_file"] = unquote(value) or None
    return VersionBlock(**values)


def build_manufacturer_map(lines: Iterable[SectionLine]) -> dict[str, str]:
    """Map declared manufacturer names to their (possibly decorated) model section."""
    manufacturers: dict[str, str] = {}
    for section, line in lines:
        if section != MANUFACTURER_SECTION:
            continue
        pair = split_key_value(line)
        if pair is None:
            # A bare identifier names its own models section.
            manufacturers[line] = line
            continue
        name, target = pair
        if name and target:
            manufacturers[name] = target
    return manufacturers


def strip_decoration(target: str) -> str:
    return target.split(",", 1)[0].strip().lower()


def classify_sections(manufacturers: Mapping[str, str], section_names: Iterable[str]) -> dict[str, str | None]:
    """Return the device sections among ``section_names``.

    A section belongs to the device table when it and some undecorated
    manufacturer target are prefixes of one another, ignoring case. The value
    is the first manufacturer whose target prefixes the section name, or
    ``None`` when only the reverse direction matched.
    """
    targets = [(name, strip_decoration(target)) for name, target in manufacturers.items()]
    targets = [(name, target) for name, target in targets if target]
    membership: dict[str, str | None] = {}
    for section in section_names:
        lowered = section.strip().lower()
        if not lowered or lowered in RESERVED_SECTIONS or lowered in membership:
            continue
        if not any(lowered.startswith(target) or target.startswith(lowered) for _, target in targets):
            continue
        membership[lowered] = next((name for name, target in targets if lowered.startswith(target)), None)
    return membership


def parse_device_line(line: str) -> tuple[str, str] | None:
    """Split ``description=install_section,hardware_id[,compatible...]``."""
    pair = split_key_value(line)
    if pair is None:
        return None
    description, rhs = pair
    fields = [field.strip() for field in rhs.split(",")]
    if len(fields) < 2 or not fields[1]:
        return None
    return description, fields[1]


def build_device_table(lines: Iterable[SectionLine], device_sections: Mapping[str, object]) -> dict[str, list[tuple[str, str]]]:
    table: dict[str, list[tuple[str, str]]] = {}
    for section, line in lines:
        if section not in device_sections:
            continue
        entry = parse_device_line(line)
        if entry is None:
            continue
        table.setdefault(section, []).append(entry)
    return table


def is_recognized_hardware_id(
    hardware_id: str,
    bus_prefixes: Sequence[str] = IMMUTABLE_CONFIG.hardware_ids.bus_prefixes,
    vendor_markers: Sequence[str] = IMMUTABLE_CONFIG.hardware_ids.vendor_markers,
) -> bool:
    upper = hardware_id.strip().upper()
    if not upper:
        return False
    if any(upper.startswith(prefix.upper()) for prefix in bus_prefixes):
        return True
    return any(marker.upper() in upper for marker in vendor_markers)


@dataclass(frozen=True)
class ParsedFile:
    name: str
    version: VersionBlock
    records: tuple[DriverRecord, ...]
    manufacturers: tuple[tuple[str, str], ...] = ()
    device_sections: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseFailure:
    path: Path
    reason: str


class InfParser:
    def __init__(
        self,
        *,
        bus_prefixes: Sequence[str] | None = None,
        vendor_markers: Sequence[str] | None = None,
    ) -> None:
        self._bus_prefixes = tuple(bus_prefixes or IMMUTABLE_CONFIG.hardware_ids.bus_prefixes)
        self._vendor_markers = tuple(vendor_markers or IMMUTABLE_CONFIG.hardware_ids.vendor_markers)

    @classmethod
    def with_extra_prefixes(cls, extra: Iterable[str]) -> InfParser:
        prefixes = list(IMMUTABLE_CONFIG.hardware_ids.bus_prefixes)
        for prefix in extra:
            cleaned = prefix.strip().upper()
            if not cleaned:
                continue
            if not cleaned.endswith("\\"):
                cleaned += "\\"
            if cleaned not in prefixes:
                prefixes.append(cleaned)
        return cls(bus_prefixes=prefixes)

    @property
    def bus_prefixes(self) -> tuple[str, ...]:
        return self._bus_prefixes

    def parse_text(self, text: str, name: str) -> ParsedFile:
        lines = list(iter_section_lines(text))
        strings = StringTable.from_lines(lines)
        version = build_version_block(lines, strings)
        manufacturers = build_manufacturer_map(lines)
        observed = list(dict.fromkeys(section for section, _ in lines))
        device_sections = classify_sections(manufacturers, observed)
        table = build_device_table(lines, device_sections)

        records: list[DriverRecord] = []
        for section, entries in table.items():
            manufacturer = device_sections.get(section)
            manufacturer_name = strings.resolve(manufacturer) if manufacturer else None
            for raw_description, hardware_id in entries:
                if not is_recognized_hardware_id(hardware_id, self._bus_prefixes, self._vendor_markers):
                    logger.debug("%s: ignoring hardware id %r in [%s]", name, hardware_id, section)
                    continue
                description = strings.resolve(unquote(raw_description)) or None
                records.append(
                    DriverRecord(
                        device_name=description,
                        description=description,
                        device_class=version.device_class,
                        class_guid=version.class_guid,
                        driver_version=version.driver_version,
                        driver_date=version.driver_date,
                        provider_name=version.provider,
                        hardware_id=hardware_id,
                        inf_identity=name,
                        catalog_file=version.catalog_file,
                        manufacturer=manufacturer_name,
                    )
                )
        return ParsedFile(
            name=name,
            version=version,
            records=tuple(records),
            manufacturers=tuple(manufacturers.items()),
            device_sections=tuple(device_sections),
        )

    def parse_bytes(self, data: bytes, name: str) -> ParsedFile:
        return self.parse_text(decode_inf_bytes(data), name)

    def parse_file(self, path: Path) -> ParsedFile:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise InfParseError(path, exc.strerror or str(exc)) from exc
        return self.parse_bytes(data, Path(path).name)

    def parse_many(self, paths: Iterable[Path]) -> tuple[list[ParsedFile], list[ParseFailure]]:
        parsed: list[ParsedFile] = []
        failures: list[ParseFailure] = []
        for path in paths:
            try:
                result = self.parse_file(path)
            except InfParseError as exc:
                logger.debug("Failed to parse %s: %s", exc.path, exc.reason)
                failures.append(ParseFailure(exc.path, exc.reason))
                continue
            logger.debug("Parsed %s: %d record(s)", path, len(result.records))
            parsed.append(result)
        return parsed, failures


def discover_inf_files(root: Path) -> list[Path]:
    """Return every ``*.inf`` under ``root`` (case-insensitive), sorted."""
    root = Path(root)
    if root.is_file():
        return [root] if root.suffix.lower() == INF_SUFFIX else []
    found = [path for path in root.rglob("*") if path.is_file() and path.suffix.lower() == INF_SUFFIX]
    return sorted(found, key=lambda path: (path.as_posix().lower(), path.as_posix()))
