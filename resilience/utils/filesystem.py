"""Filesystem helpers for server directories and log files."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from ..core.errors import FilesystemError, AtomicWriteError
from ..core.log import get_logger

logger = get_logger(__name__)


def atomic_write(path: Path, data: Union[str, bytes], mode: str = "w") -> None:
    """Atomically write data to a file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    is_binary = isinstance(data, bytes) or "b" in mode
    write_mode = mode if is_binary else mode.replace("b", "")
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode=write_mode,
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.tmp",
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        tmp_path.replace(path)
        logger.debug("Atomically wrote %s to %s", len(data), path)
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass
        raise AtomicWriteError(f"Failed to atomically write to {path}: {e}") from e


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists and return it."""
    try:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path
    except PermissionError as e:
        raise FilesystemError(f"Permission denied creating directory {path}") from e
    except OSError as e:
        raise FilesystemError(f"Error creating directory {path}: {e}") from e


def make_temp_root(prefix: str, parent: Optional[Path] = None) -> Path:
    """Create a fresh, uniquely named temporary directory."""
    try:
        if parent is not None:
            ensure_dir(parent)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    except OSError as e:
        raise FilesystemError(f"Error creating temporary directory: {e}") from e


def safe_remove(path: Path) -> bool:
    """Remove a file or directory tree, returning whether anything was removed."""
    try:
        path = Path(path)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return True
        elif path.exists() or path.is_symlink():
            path.unlink()
            return True
        else:
            return False
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False
