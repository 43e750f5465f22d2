"""Locations used for settings and default output."""
from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "DriverBackup"


def get_application_directory() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    base = os.getenv("LOCALAPPDATA") or os.getenv("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_DIR_NAME


def get_default_output_root() -> Path:
    return Path.cwd() / "driver_backup"
