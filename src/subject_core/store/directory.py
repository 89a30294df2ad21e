"""Loose-file subject store: one file per subject, named by its decimal ID."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from subject_core.codec import decode_subject, encode_subject
from subject_core.exceptions import StoreOpenError, SubjectNotFoundError
from subject_core.subject import Subject
from subject_core.utils import atomic_write_bytes

logger = logging.getLogger(__name__)


def _parse_id(name: str) -> int | None:
    if not (name.isascii() and name.isdigit()):
        return None
    return int(name)


class DirectoryStore:
    """Read/write store backed by a directory.

    Every write is durable as soon as it returns, so an interrupted scrape leaves a
    partially populated directory that a later run can continue.
    """

    def __init__(self, path: Path) -> None:
        if not path.exists():
            raise StoreOpenError(f"Directory {path} does not exist", context={"path": str(path)})
        if not path.is_dir():
            raise StoreOpenError(f"{path} is not a directory", context={"path": str(path)})
        self.path = path

    def __enter__(self) -> DirectoryStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DirectoryStore({str(self.path)!r})"

    def _filename(self, subject_id: int) -> Path:
        return self.path / str(subject_id)

    def ids(self) -> list[int]:
        """Populated IDs in ascending order."""
        found = []
        for entry in self.path.iterdir():
            subject_id = _parse_id(entry.name)
            if subject_id is not None and entry.is_file():
                found.append(subject_id)
        return sorted(found)

    def count(self) -> int:
        ids = self.ids()
        return ids[-1] + 1 if ids else 0

    def has(self, subject_id: int) -> bool:
        return subject_id >= 0 and self._filename(subject_id).is_file()

    def read_bytes(self, subject_id: int) -> bytes:
        if not self.has(subject_id):
            raise SubjectNotFoundError(
                f"Subject {subject_id} not found in {self.path}", subject_id=subject_id
            )
        return self._filename(subject_id).read_bytes()

    def read(self, subject_id: int) -> Subject:
        return decode_subject(self.read_bytes(subject_id), subject_id=subject_id)

    def write(self, subject_id: int, subject: Subject) -> None:
        self.write_bytes(subject_id, encode_subject(subject))

    def write_bytes(self, subject_id: int, data: bytes) -> None:
        if subject_id < 0:
            raise ValueError(f"Subject ID must be non-negative, got {subject_id}")
        atomic_write_bytes(self._filename(subject_id), [data])
        logger.debug("Wrote subject %d (%d bytes) to %s", subject_id, len(data), self.path)

    def close(self) -> None:
        return None
