"""File system utilities: atomic writes, recursive removal, writability checks."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)

FILE_MODE = 0o644
SCRIPT_MODE = 0o755


def atomic_write(
    path: Path, content: str, encoding: str = "utf-8", mode: int = FILE_MODE,
) -> None:
    """Write content to file atomically via temp file + rename.

    Ensures the file is never partially written on crash.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file in the same directory (so rename is atomic on same FS)
    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=path.suffix,
    )
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on failure
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def remove_path(path: Path) -> bool:
    """Remove a file, symlink or directory tree.

    Returns False if nothing existed at ``path``. Symlinks are removed
    themselves, never followed.
    """
    if not os.path.lexists(path):
        return False
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


def is_writable_dir(path: Path) -> bool:
    """True if ``path`` is an existing directory the current user can write."""
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)


def join_under(root: Path, entry: str) -> Path:
    """Join a root-relative entry such as ``/home/u/x`` under ``root``."""
    return root / entry.lstrip("/")
