"""Exception types raised by the driver backup services."""
from __future__ import annotations

from pathlib import Path


class DriverBackupError(RuntimeError):
    pass


class PreconditionError(DriverBackupError):
    """Raised before any output is written when a run cannot start."""


class InfParseError(DriverBackupError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class ArchiveExtractionError(DriverBackupError):
    pass
