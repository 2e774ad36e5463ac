"""
Atomic whole-file replacement for small local state records.

A reader always sees either the previous complete value or the new
complete value: data goes to a temp file in the same directory, is
fsync'ed, chmod 600'ed, then renamed over the target.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, data: str) -> None:
    """Atomic write: tmp → fsync → rename. chmod 600."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_text_or_none(path: Path) -> Optional[str]:
    """Return the file's content, or None if it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
