"""Subject stores: a loose-file directory or a single indexed file, behind one interface."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from subject_core.exceptions import StoreOpenError
from subject_core.store.base import (
    SubjectReader,
    SubjectWriter,
    for_each_subject,
    iter_subjects,
)
from subject_core.store.directory import DirectoryStore
from subject_core.store.file import DataFileHeader, FileStoreReader, FileStoreWriter, LevelIndex


class StoreKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"


def detect_store_kind(path: Path) -> StoreKind:
    if not path.exists():
        raise StoreOpenError(f"{path} does not exist", context={"path": str(path)})
    if path.is_dir():
        return StoreKind.DIRECTORY
    if path.is_file():
        return StoreKind.FILE
    raise StoreOpenError(f"{path} is neither a file nor a directory", context={"path": str(path)})


def open_reader(path: Path) -> DirectoryStore | FileStoreReader:
    """Open an existing store for reading, choosing the backend from the path."""
    kind = detect_store_kind(path)
    if kind is StoreKind.DIRECTORY:
        return DirectoryStore(path)
    return FileStoreReader(path)


def open_writer(path: Path) -> DirectoryStore | FileStoreWriter:
    """Open a store for writing: an existing directory, otherwise a new single file."""
    if path.is_dir():
        return DirectoryStore(path)
    return FileStoreWriter(path)


__all__ = [
    "DataFileHeader",
    "DirectoryStore",
    "FileStoreReader",
    "FileStoreWriter",
    "LevelIndex",
    "StoreKind",
    "SubjectReader",
    "SubjectWriter",
    "detect_store_kind",
    "for_each_subject",
    "iter_subjects",
    "open_reader",
    "open_writer",
]
