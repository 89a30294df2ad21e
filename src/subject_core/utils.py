"""Shared filesystem helpers."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

TMP_SUFFIX = ".tmp"


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json(path: Path) -> Any:
    """Read a JSON document."""
    return json.loads(path.read_text(encoding="utf-8"))


def atomic_write_bytes(path: Path, chunks: Iterable[bytes]) -> int:
    """Write chunks to ``path`` atomically, returning the number of bytes written.

    Data goes to a sibling ``.tmp`` file which is fsynced and then renamed over the
    destination, so readers never observe a partially written file.
    """
    tmp_path = path.with_name(path.name + TMP_SUFFIX)
    written = 0
    try:
        with tmp_path.open("wb") as f:
            for chunk in chunks:
                f.write(chunk)
                written += len(chunk)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return written
