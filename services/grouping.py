"""Grouping of driver records into report groups and backup folder plans."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Sequence

from driver_backup.constants import IMMUTABLE_CONFIG
from services.driver_records import UNKNOWN, DriverRecord

KeyExtractor = Callable[[DriverRecord], tuple[str, ...]]

LABEL_EXTRA_CHARS = frozenset(" .-_()[]")
LABEL_TRAILING_CHARS = "_ ."
PACKAGE_DIMENSION = "package"


class GroupStrategy(str, Enum):
    CLASS_PACKAGE = "class-package"
    GUID_VERSION = "guid-version"
    VERSION = "version"
    CLASS = "class"

    @property
    def title(self) -> str:
        return _STRATEGY_TITLES[self]

    @property
    def dimensions(self) -> tuple[str, ...]:
        return _STRATEGY_DIMENSIONS[self]

    @classmethod
    def parse(cls, value: str | GroupStrategy) -> GroupStrategy:
        if isinstance(value, GroupStrategy):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            choices = ", ".join(item.value for item in cls)
            raise ValueError(f"Unknown grouping strategy: {value} (expected one of {choices})") from exc


_STRATEGY_TITLES = {
    GroupStrategy.CLASS_PACKAGE: "Device Class and Package",
    GroupStrategy.GUID_VERSION: "Class GUID and Driver Version",
    GroupStrategy.VERSION: "Driver Version",
    GroupStrategy.CLASS: "Device Class",
}

_STRATEGY_DIMENSIONS = {
    GroupStrategy.CLASS_PACKAGE: ("class", PACKAGE_DIMENSION),
    GroupStrategy.GUID_VERSION: ("guid", "version"),
    GroupStrategy.VERSION: ("version",),
    GroupStrategy.CLASS: ("class",),
}


def _bucket(value: str | None, label: str) -> str:
    cleaned = value.strip() if value else ""
    return cleaned or f"Unknown_{label}"


def package_key(record: DriverRecord) -> str:
    identity = record.inf_identity.strip().lower() if record.inf_identity else ""
    return identity or "Unknown_Package"


_DIMENSION_EXTRACTORS: dict[str, Callable[[DriverRecord], str]] = {
    "class": lambda record: _bucket(record.device_class, "Class"),
    PACKAGE_DIMENSION: package_key,
    "guid": lambda record: _bucket(record.class_guid, "GUID"),
    "version": lambda record: _bucket(record.driver_version, "Version"),
}


def key_extractor_for(strategy: GroupStrategy, *, exclude: Sequence[str] = ()) -> KeyExtractor:
    """Build the key function for ``strategy`` once, outside any record loop."""
    extractors = tuple(
        _DIMENSION_EXTRACTORS[dimension] for dimension in strategy.dimensions if dimension not in exclude
    )

    def extract(record: DriverRecord) -> tuple[str, ...]:
        return tuple(extractor(record) for extractor in extractors)

    return extract


@dataclass(frozen=True)
class DriverGroup:
    key: tuple[str, ...]
    records: tuple[DriverRecord, ...]

    @property
    def label(self) -> str:
        return " / ".join(self.key)

    def __len__(self) -> int:
        return len(self.records)


def group_records(records: Iterable[DriverRecord], strategy: GroupStrategy) -> list[DriverGroup]:
    """Group records under sorted keys; members keep discovery order."""
    extract = key_extractor_for(strategy)
    buckets: dict[tuple[str, ...], list[DriverRecord]] = {}
    for record in records:
        buckets.setdefault(extract(record), []).append(record)
    return [DriverGroup(key, tuple(buckets[key])) for key in sorted(buckets)]


def count_grouped(groups: Iterable[DriverGroup]) -> int:
    return sum(len(group) for group in groups)


def sanitize_label(*parts: str | None, max_length: int = IMMUTABLE_CONFIG.label_max_length) -> str:
    """Join ``parts`` with underscores into a filesystem-safe folder label."""
    raw = "_".join(part if part else UNKNOWN for part in parts) if parts else UNKNOWN
    cleaned = "".join(ch if ch.isalnum() or ch in LABEL_EXTRA_CHARS else "_" for ch in raw)
    cleaned = cleaned[:max_length].rstrip(LABEL_TRAILING_CHARS)
    return cleaned or UNKNOWN


def package_folder_label(record: DriverRecord) -> str:
    return sanitize_label(
        record.display_name,
        record.provider_name,
        record.driver_version,
        record.normalized_date,
    )


def _disambiguate(label: str, identity: str, taken: set[str]) -> str:
    stem = identity.rsplit(".", 1)[0] or identity
    suffix = sanitize_label(stem)
    room = IMMUTABLE_CONFIG.label_max_length - len(suffix) - 3
    candidate = sanitize_label(f"{label[:max(room, 1)]} ({suffix})")
    counter = 2
    while candidate.casefold() in taken:
        candidate = sanitize_label(f"{label[:max(room - 4, 1)]} ({suffix} {counter})")
        counter += 1
    return candidate


@dataclass(frozen=True)
class PackagePlan:
    identity: str
    folder: str
    records: tuple[DriverRecord, ...]

    @property
    def primary(self) -> DriverRecord:
        return self.records[0]


@dataclass(frozen=True)
class GroupPlan:
    key: tuple[str, ...]
    folder: str
    packages: tuple[PackagePlan, ...]

    @property
    def label(self) -> str:
        return " / ".join(self.key)

    def package_path(self, package: PackagePlan) -> str:
        return f"{self.folder}/{package.folder}"

    @property
    def record_count(self) -> int:
        return sum(len(package.records) for package in self.packages)


def bucket_packages(records: Iterable[DriverRecord]) -> list[tuple[str, tuple[DriverRecord, ...]]]:
    """One entry per distinct normalized package identity, sorted by identity."""
    buckets: dict[str, list[DriverRecord]] = {}
    for record in records:
        buckets.setdefault(package_key(record), []).append(record)
    return [(identity, tuple(buckets[identity])) for identity in sorted(buckets)]


def plan_backup(records: Iterable[DriverRecord], strategy: GroupStrategy) -> list[GroupPlan]:
    """Lay out ``<group folder>/<package folder>`` with one entry per package.

    A package is placed in the group of its first record, so every record
    lands in exactly one group even if its devices disagree on the key.
    """
    container_key = key_extractor_for(strategy, exclude=(PACKAGE_DIMENSION,))
    containers: dict[tuple[str, ...], list[tuple[str, tuple[DriverRecord, ...]]]] = {}
    for identity, package_records in bucket_packages(records):
        containers.setdefault(container_key(package_records[0]), []).append((identity, package_records))

    plans: list[GroupPlan] = []
    for key in sorted(containers):
        taken: set[str] = set()
        packages: list[PackagePlan] = []
        for identity, package_records in containers[key]:
            label = package_folder_label(package_records[0])
            if label.casefold() in taken:
                label = _disambiguate(label, identity, taken)
            taken.add(label.casefold())
            packages.append(PackagePlan(identity, label, package_records))
        folder = "/".join(sanitize_label(part) for part in key)
        plans.append(GroupPlan(key, folder, tuple(packages)))
    return plans


def count_planned(plans: Iterable[GroupPlan]) -> int:
    return sum(plan.record_count for plan in plans)
