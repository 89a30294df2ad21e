"""Single-file indexed subject store.

File layout (all integers little-endian)::

    [4 bytes: header_length]
    [header_length bytes: header, compact UTF-8 JSON]
    [payload region: subject payloads concatenated in ID order, no separators]

The header holds ``subject_byte_offset`` (one entry per slot, relative to the start of the
payload region) and ``subjects_by_level`` (per level, ascending radical/kanji/vocabulary
IDs; bucket ``level - 1``). The length of slot ``i`` is ``offset[i + 1] - offset[i]``, or
``payload_size - offset[i]`` for the last slot. Unpopulated slots have length zero.
"""

from __future__ import annotations

import bisect
import dataclasses
import json
import logging
import os
import struct
from pathlib import Path
from typing import Any, BinaryIO

from subject_core.codec import decode_subject, encode_subject
from subject_core.exceptions import (
    DuplicateSubjectError,
    StoreFormatError,
    StoreOpenError,
    SubjectNotFoundError,
    SubjectFormatError,
)
from subject_core.subject import Subject, SubjectKind
from subject_core.utils import atomic_write_bytes

logger = logging.getLogger(__name__)

HEADER_LENGTH = struct.Struct("<I")

_KIND_BUCKETS = {
    SubjectKind.RADICAL: "radicals",
    SubjectKind.KANJI: "kanji",
    SubjectKind.VOCABULARY: "vocabulary",
}


@dataclasses.dataclass
class LevelIndex:
    radicals: list[int] = dataclasses.field(default_factory=list)
    kanji: list[int] = dataclasses.field(default_factory=list)
    vocabulary: list[int] = dataclasses.field(default_factory=list)

    def add(self, kind: SubjectKind, subject_id: int) -> None:
        bisect.insort(getattr(self, _KIND_BUCKETS[kind]), subject_id)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class DataFileHeader:
    subject_byte_offset: list[int] = dataclasses.field(default_factory=list)
    subjects_by_level: list[LevelIndex] = dataclasses.field(default_factory=list)

    def to_bytes(self) -> bytes:
        payload = {
            "subject_byte_offset": self.subject_byte_offset,
            "subjects_by_level": [level.to_dict() for level in self.subjects_by_level],
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> DataFileHeader:
        try:
            obj = json.loads(data.decode("utf-8"))
            offsets = obj["subject_byte_offset"]
            levels = [
                LevelIndex(
                    radicals=list(level.get("radicals", [])),
                    kanji=list(level.get("kanji", [])),
                    vocabulary=list(level.get("vocabulary", [])),
                )
                for level in obj.get("subjects_by_level", [])
            ]
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
            raise StoreFormatError(f"Corrupt store header: {exc}") from exc
        if not isinstance(offsets, list) or not all(
            isinstance(o, int) and not isinstance(o, bool) for o in offsets
        ):
            raise StoreFormatError("Corrupt store header: subject_byte_offset must be a list of integers")
        return cls(subject_byte_offset=offsets, subjects_by_level=levels)


class FileStoreReader:
    """Random-access reader over a single-file store."""

    def __init__(self, path: Path) -> None:
        if not path.exists():
            raise StoreOpenError(f"Store file {path} does not exist", context={"path": str(path)})
        if not path.is_file():
            raise StoreOpenError(f"{path} is not a file", context={"path": str(path)})
        self.path = path
        self._fh: BinaryIO = path.open("rb")
        try:
            self._load_header()
        except StoreFormatError as exc:
            self._fh.close()
            exc.context.setdefault("path", str(path))
            raise

    def _load_header(self) -> None:
        file_size = os.fstat(self._fh.fileno()).st_size
        raw_length = self._fh.read(HEADER_LENGTH.size)
        if len(raw_length) < HEADER_LENGTH.size:
            raise StoreFormatError(f"Store file {self.path} is too short to hold a header")
        (header_length,) = HEADER_LENGTH.unpack(raw_length)
        payload_start = HEADER_LENGTH.size + header_length
        if payload_start > file_size:
            raise StoreFormatError(
                f"Store header of {self.path} is truncated: needs {header_length} bytes, "
                f"file has {file_size - HEADER_LENGTH.size}",
            )
        self.header = DataFileHeader.from_bytes(self._fh.read(header_length))
        self._payload_start = payload_start
        self._payload_size = file_size - payload_start

        previous = 0
        for subject_id, offset in enumerate(self.header.subject_byte_offset):
            if offset < previous or offset > self._payload_size:
                raise StoreFormatError(
                    f"Store header of {self.path} has invalid offset {offset} for subject {subject_id}",
                )
            previous = offset

    def __enter__(self) -> FileStoreReader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FileStoreReader({str(self.path)!r})"

    def count(self) -> int:
        return len(self.header.subject_byte_offset)

    def levels(self) -> list[LevelIndex]:
        return list(self.header.subjects_by_level)

    def _span(self, subject_id: int) -> tuple[int, int]:
        offsets = self.header.subject_byte_offset
        start = offsets[subject_id]
        if subject_id == len(offsets) - 1:
            end = self._payload_size
        else:
            end = offsets[subject_id + 1]
        return start, end - start

    def has(self, subject_id: int) -> bool:
        if not 0 <= subject_id < self.count():
            return False
        return self._span(subject_id)[1] > 0

    def read_bytes(self, subject_id: int) -> bytes:
        count = self.count()
        if not self.has(subject_id):
            raise SubjectNotFoundError(
                f"Subject ID {subject_id} is not populated (range 0-{count})",
                subject_id=subject_id,
                count=count,
            )
        start, length = self._span(subject_id)
        self._fh.seek(self._payload_start + start)
        data = self._fh.read(length)
        if len(data) != length:
            raise StoreFormatError(
                f"Short read for subject {subject_id} in {self.path}",
                context={"subject_id": subject_id, "expected": length, "got": len(data)},
            )
        return data

    def read(self, subject_id: int) -> Subject:
        return decode_subject(self.read_bytes(subject_id), subject_id=subject_id)

    def close(self) -> None:
        self._fh.close()


class FileStoreWriter:
    """Buffered writer for a single-file store.

    Payloads are held in memory and the file only appears on :meth:`close`, written to a
    temporary sibling and renamed into place. :meth:`abort` (or leaving a ``with`` block on
    an exception) discards everything.
    """

    def __init__(self, path: Path) -> None:
        if path.is_dir():
            raise StoreOpenError(f"{path} is a directory", context={"path": str(path)})
        if not path.parent.is_dir():
            raise StoreOpenError(
                f"Parent directory of {path} does not exist", context={"path": str(path)}
            )
        self.path = path
        self._payloads: list[bytes] = []
        self._levels: list[LevelIndex] = []
        self._closed = False

    def __enter__(self) -> FileStoreWriter:
        return self

    def __exit__(self, exc_type: Any, *args: Any) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __repr__(self) -> str:
        return f"FileStoreWriter({str(self.path)!r})"

    def write(self, subject_id: int, subject: Subject) -> None:
        self._store(subject_id, encode_subject(subject), subject)

    def write_bytes(self, subject_id: int, data: bytes) -> None:
        self._store(subject_id, data, decode_subject(data, subject_id=subject_id))

    def _store(self, subject_id: int, data: bytes, subject: Subject) -> None:
        if self._closed:
            raise ValueError(f"Write to closed store {self.path}")
        if subject_id < 0:
            raise ValueError(f"Subject ID must be non-negative, got {subject_id}")
        if subject.level < 1:
            raise SubjectFormatError(
                f"Subject {subject_id} has invalid level {subject.level}",
                context={"subject_id": subject_id, "level": subject.level},
            )

        if len(self._payloads) <= subject_id:
            self._payloads.extend([b""] * (subject_id + 1 - len(self._payloads)))
        if self._payloads[subject_id]:
            raise DuplicateSubjectError(
                f"Subject {subject_id} written twice to {self.path}",
                context={"subject_id": subject_id},
            )
        self._payloads[subject_id] = data

        level_index = subject.level - 1
        while len(self._levels) <= level_index:
            self._levels.append(LevelIndex())
        self._levels[level_index].add(subject.kind, subject_id)

    def close(self) -> None:
        if self._closed:
            return
        offsets = []
        offset = 0
        for payload in self._payloads:
            offsets.append(offset)
            offset += len(payload)

        header = DataFileHeader(subject_byte_offset=offsets, subjects_by_level=self._levels)
        header_bytes = header.to_bytes()
        written = atomic_write_bytes(
            self.path,
            [HEADER_LENGTH.pack(len(header_bytes)), header_bytes, *self._payloads],
        )
        self._closed = True
        logger.info(
            "Wrote %d subject slots (%d bytes, header %d bytes) to %s",
            len(offsets),
            written,
            len(header_bytes),
            self.path,
        )

    def abort(self) -> None:
        if self._closed:
            return
        logger.warning("Discarding %d buffered subject slots for %s", len(self._payloads), self.path)
        self._payloads = []
        self._levels = []
        self._closed = True
