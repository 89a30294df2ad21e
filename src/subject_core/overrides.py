"""Hand-written corrections merged onto subjects during combine.

The override file is YAML::

    subjects:
      440:
        kanji:
          meaning_hint: "Think of a campfire."
        meanings:
          - {meaning: Fire, type: primary}

Each patch names only the fields it changes. Scalars overwrite, nested mappings merge
recursively and lists replace the existing list wholesale. A missing or invalid override
file is never fatal: it is logged and treated as empty.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from subject_core.config_validator import read_yaml
from subject_core.exceptions import SubjectFormatError, YamlParseError
from subject_core.subject import Kanji, Radical, Subject, Vocabulary

logger = logging.getLogger(__name__)

_NESTED_FIELDS: dict[str, set[str]] = {
    "radical": {f.name for f in dataclasses.fields(Radical)},
    "kanji": {f.name for f in dataclasses.fields(Kanji)},
    "vocabulary": {f.name for f in dataclasses.fields(Vocabulary)},
}
_SUBJECT_FIELDS = {f.name for f in dataclasses.fields(Subject)} - {"id"}


class OverrideFormatError(ValueError):
    pass


class OverrideSet:
    def __init__(self, patches: Mapping[int, dict[str, Any]] | None = None, *, source: Path | None = None) -> None:
        self._patches: dict[int, dict[str, Any]] = dict(patches or {})
        self.source = source

    def __len__(self) -> int:
        return len(self._patches)

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._patches

    def get(self, subject_id: int) -> dict[str, Any] | None:
        return self._patches.get(subject_id)

    def ids(self) -> list[int]:
        return sorted(self._patches)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, dict)) and not value)


def merge_patch(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``patch`` over ``base`` without modifying either."""
    merged = dict(base)
    for key, value in patch.items():
        if _is_empty(value):
            continue
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = merge_patch(existing, value)
        elif isinstance(value, Mapping):
            merged[key] = merge_patch({}, value)
        elif isinstance(value, list):
            merged[key] = list(value)
        else:
            merged[key] = value
    return merged


def _validate_patch(subject_id: int, patch: Any) -> dict[str, Any]:
    if not isinstance(patch, Mapping):
        raise OverrideFormatError(f"override for subject {subject_id} must be a mapping")
    unknown = sorted(str(k) for k in patch if k not in _SUBJECT_FIELDS)
    if unknown:
        raise OverrideFormatError(f"override for subject {subject_id} has unknown fields: {', '.join(unknown)}")
    for kind, allowed in _NESTED_FIELDS.items():
        nested = patch.get(kind)
        if nested is None:
            continue
        if not isinstance(nested, Mapping):
            raise OverrideFormatError(f"override for subject {subject_id}: {kind} must be a mapping")
        unknown = sorted(str(k) for k in nested if k not in allowed)
        if unknown:
            raise OverrideFormatError(
                f"override for subject {subject_id}: unknown {kind} fields: {', '.join(unknown)}"
            )
    return dict(patch)


def _check_types(subject_id: int, patch: dict[str, Any]) -> None:
    """Build a throwaway subject from the patch so bad values fail at load time."""
    trial = merge_patch({"level": 1}, patch)
    if not any(kind in trial for kind in _NESTED_FIELDS):
        trial["radical"] = {}
    try:
        Subject.from_dict(trial, subject_id=subject_id)
    except SubjectFormatError as exc:
        raise OverrideFormatError(f"override for subject {subject_id}: {exc.message}") from exc


def _subject_id(key: Any) -> int:
    if isinstance(key, int) and not isinstance(key, bool):
        subject_id = key
    elif isinstance(key, str) and key.isascii() and key.isdigit():
        subject_id = int(key)
    else:
        raise OverrideFormatError(f"override key {key!r} is not a subject ID")
    if subject_id < 0:
        raise OverrideFormatError(f"override key {key!r} is not a subject ID")
    return subject_id


def parse_overrides(data: Any) -> dict[int, dict[str, Any]]:
    if not isinstance(data, Mapping):
        raise OverrideFormatError("override document must be a mapping")
    subjects = data.get("subjects") or {}
    if not isinstance(subjects, Mapping):
        raise OverrideFormatError("'subjects' must be a mapping of subject ID to patch")
    patches: dict[int, dict[str, Any]] = {}
    for key, patch in subjects.items():
        subject_id = _subject_id(key)
        if subject_id in patches:
            logger.warning("Subject %d has more than one override; keeping the last one", subject_id)
        patch = _validate_patch(subject_id, patch)
        _check_types(subject_id, patch)
        patches[subject_id] = patch
    return patches


def load_overrides(path: Path | None) -> OverrideSet:
    if path is None:
        return OverrideSet()
    if not path.is_file():
        logger.warning("Override file %s not found; continuing without overrides", path)
        return OverrideSet(source=path)
    try:
        patches = parse_overrides(read_yaml(path))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Override file %s could not be read; ignoring it: %s", path, exc)
        return OverrideSet(source=path)
    except YamlParseError as exc:
        logger.warning("Override file %s could not be parsed; ignoring it: %s", path, exc.context.get("error"))
        return OverrideSet(source=path)
    except OverrideFormatError as exc:
        logger.warning("Override file %s is invalid; ignoring it: %s", path, exc)
        return OverrideSet(source=path)
    logger.info("Loaded %d subject overrides from %s", len(patches), path)
    return OverrideSet(patches, source=path)


def apply_override(subject: Subject, overrides: OverrideSet) -> Subject:
    """Return ``subject`` with its patch merged in, or unchanged if it has none."""
    if subject.id is None:
        return subject
    patch = overrides.get(subject.id)
    if patch is None:
        return subject
    merged = merge_patch(subject.to_dict(), patch)
    try:
        return Subject.from_dict(merged, subject_id=subject.id)
    except SubjectFormatError as exc:
        raise SubjectFormatError(
            f"Override for subject {subject.id} produces an invalid subject: {exc.message}",
            context={"subject_id": subject.id, "override_source": str(overrides.source), **exc.context},
        ) from exc
