"""User-editable settings persisted as JSON next to the application."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from driver_backup.paths import get_application_directory, get_default_output_root

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.json"


@dataclass
class UserSettings:
    output_root: str = field(default_factory=lambda: str(get_default_output_root()))
    group_strategy: str = "class-package"
    extra_bus_prefixes: list[str] = field(default_factory=list)
    verbose: bool = False


class SettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or get_application_directory() / SETTINGS_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> UserSettings:
        if not self._path.exists():
            return UserSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return UserSettings()
        if not isinstance(data, dict):
            return UserSettings()
        known = {item.name for item in fields(UserSettings)}
        settings = UserSettings(**{key: value for key, value in data.items() if key in known})
        if not isinstance(settings.extra_bus_prefixes, list):
            settings.extra_bus_prefixes = []
        settings.extra_bus_prefixes = [str(prefix) for prefix in settings.extra_bus_prefixes if str(prefix).strip()]
        return settings

    def save(self, settings: UserSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")


def parse_prefix_list(text: str) -> list[str]:
    """Split a comma or whitespace separated prefix list, dropping blanks."""
    return [part.strip() for part in text.replace(",", " ").split() if part.strip()]
