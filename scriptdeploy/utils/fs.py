from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_bytes(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """Write bytes atomically so readers never see a partial file.

    When ``mode`` is given the temp file is chmod-ed before the rename, so the
    final path never exists with looser permissions.
    """
    ensure_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=path.name, dir=str(path.parent))
    tmp_path = Path(tmp)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        tmp_path.replace(path)
    finally:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8", mode: Optional[int] = None) -> None:
    atomic_write_bytes(path, text.encode(encoding), mode=mode)


def remove_file(path: Path) -> bool:
    """Delete ``path`` if present. Returns True when a file was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
