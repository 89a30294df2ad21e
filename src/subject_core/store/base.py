from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Protocol

from subject_core.exceptions import SubjectDecodeError, SubjectNotFoundError
from subject_core.subject import Subject

logger = logging.getLogger(__name__)

SubjectCallback = Callable[[int, Subject], None]


class SubjectReader(Protocol):
    """Read side of a subject store."""

    def count(self) -> int:
        """Upper bound (max populated ID + 1) on addressable subjects."""
        ...

    def has(self, subject_id: int) -> bool:
        """Whether ``subject_id`` is populated, without decoding its payload."""
        ...

    def read(self, subject_id: int) -> Subject: ...

    def read_bytes(self, subject_id: int) -> bytes: ...

    def close(self) -> None: ...


class SubjectWriter(Protocol):
    """Write side of a subject store."""

    def write(self, subject_id: int, subject: Subject) -> None: ...

    def write_bytes(self, subject_id: int, data: bytes) -> None: ...

    def close(self) -> None: ...


def iter_subjects(reader: SubjectReader) -> Iterator[tuple[int, Subject]]:
    """Yield ``(id, subject)`` for every readable slot in ascending ID order.

    Gaps and undecodable payloads are skipped; any other error propagates.
    """
    for subject_id in range(reader.count()):
        try:
            subject = reader.read(subject_id)
        except (SubjectNotFoundError, SubjectDecodeError) as exc:
            logger.debug("Skipping subject %d: %s", subject_id, exc)
            continue
        yield subject_id, subject


def for_each_subject(reader: SubjectReader, fn: SubjectCallback) -> None:
    for subject_id, subject in iter_subjects(reader):
        fn(subject_id, subject)
