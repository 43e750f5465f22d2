"""Admin privilege and output directory checks for Windows."""
from __future__ import annotations

import ctypes
import logging
import sys
import uuid
from pathlib import Path
from typing import Final

from services.errors import PreconditionError

logger = logging.getLogger(__name__)

SHELLEXECUTE_MIN_SUCCESS: Final[int] = 32


def is_admin() -> bool:
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except AttributeError:
        return False


def relaunch_as_admin() -> bool:
    params = " ".join(f'"{arg}"' for arg in sys.argv)
    result = ctypes.windll.shell32.ShellExecuteW(None, "runas", sys.executable, params, None, 1)
    return int(result) > SHELLEXECUTE_MIN_SUCCESS


def ensure_admin() -> None:
    if not is_admin():
        raise PreconditionError("Administrator privileges are required to export driver packages")


def validate_output_directory(path: Path) -> Path:
    """Create ``path`` if needed and prove it is writable."""
    path = Path(path)
    if path.exists() and not path.is_dir():
        raise PreconditionError(f"Output path is not a directory: {path}")
    marker = path / f".write_test_{uuid.uuid4().hex}"
    try:
        path.mkdir(parents=True, exist_ok=True)
        marker.write_text("", encoding="utf-8")
        marker.unlink()
    except OSError as exc:
        raise PreconditionError(f"Output directory is not writable: {path}: {exc}") from exc
    logger.debug("Output directory %s is writable", path)
    return path
