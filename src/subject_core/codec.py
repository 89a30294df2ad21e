"""Payload codec for subject records.

A payload is the compact UTF-8 JSON form of :meth:`Subject.to_dict`. Payloads never carry
the subject ID; stores inject it from the slot the payload was read from.
"""

from __future__ import annotations

import json
from typing import Any

import yaml

from subject_core.exceptions import SubjectDecodeError, SubjectFormatError
from subject_core.subject import Subject

_SEPARATORS = (",", ":")


def encode_subject(subject: Subject) -> bytes:
    return json.dumps(subject.to_dict(), ensure_ascii=False, separators=_SEPARATORS).encode("utf-8")


def decode_subject(data: bytes, *, subject_id: int | None = None) -> Subject:
    """Decode a payload, raising :class:`SubjectDecodeError` if it is not a valid subject."""
    try:
        obj: Any = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SubjectDecodeError(
            f"Subject {subject_id} payload is not valid JSON: {exc}",
            context={"subject_id": subject_id, "length": len(data)},
        ) from exc
    try:
        return Subject.from_dict(obj, subject_id=subject_id)
    except SubjectFormatError as exc:
        raise SubjectDecodeError(
            f"Subject {subject_id} payload is malformed: {exc.message}",
            context={"subject_id": subject_id, **exc.context},
        ) from exc


def to_text(subject: Subject) -> str:
    """Human-readable form used by the dump and diff tools."""
    return yaml.safe_dump(
        subject.to_dict(include_id=True),
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
    )
