"""Visually similar kanji lookup.

The index maps a kanji character to candidate characters with a confidence score. Sources
are merged in a fixed order: the first source to mention a pair establishes it, and later
sources can only raise its score. Scores are stored as ``trunc(score * 1000)`` in the
final output.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from pathlib import Path
from typing import Any

from subject_core.exceptions import SimilaritySourceError
from subject_core.store.base import SubjectReader, iter_subjects
from subject_core.subject import SimilarKanji, SubjectKind
from subject_core.utils import read_json

logger = logging.getLogger(__name__)

UNSCORED_SCORE = 1.0
DEFAULT_SCORE_THRESHOLD = 0.4
SCORE_SCALE = 1000


def fixed_point_score(score: float) -> int:
    return math.trunc(score * SCORE_SCALE)


@dataclasses.dataclass(frozen=True)
class SimilaritySource:
    """One similarity file. Unscored files map a character to a list of characters;
    scored files map it to a list of ``{"kan": ..., "score": ...}`` objects."""

    path: Path
    scored: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, base_dir: Path | None = None) -> SimilaritySource:
        path = Path(data["path"])
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return cls(path=path, scored=bool(data.get("scored", False)))


@dataclasses.dataclass
class _Entry:
    kan: str
    score: float


class SimilarityIndex:
    def __init__(self, kanji_ids: dict[str, int] | None = None) -> None:
        self.kanji_ids: dict[str, int] = dict(kanji_ids or {})
        self._data: dict[str, list[_Entry]] = {}

    @classmethod
    def from_reader(cls, reader: SubjectReader) -> SimilarityIndex:
        """Index every kanji subject's character to its ID."""
        kanji_ids = {
            subject.japanese: subject_id
            for subject_id, subject in iter_subjects(reader)
            if subject.kind is SubjectKind.KANJI
        }
        logger.info("Indexed %d kanji characters for similarity lookup", len(kanji_ids))
        return cls(kanji_ids)

    def __len__(self) -> int:
        return len(self._data)

    def add(self, kanji: str, similar: str, score: float) -> None:
        entries = self._data.setdefault(kanji, [])
        for entry in entries:
            if entry.kan == similar:
                if score > entry.score:
                    entry.score = score
                return
        entries.append(_Entry(similar, score))

    def add_unscored_file(self, path: Path) -> int:
        data = _load_source(path)
        added = 0
        for kanji, entries in data.items():
            if not isinstance(entries, list):
                raise SimilaritySourceError(
                    f"Unscored similarity entry for {kanji!r} in {path} is not a list",
                    context={"path": str(path), "kanji": kanji},
                )
            for similar in entries:
                if not isinstance(similar, str):
                    raise SimilaritySourceError(
                        f"Unscored similarity entry for {kanji!r} in {path} is not a string: {similar!r}",
                        context={"path": str(path), "kanji": kanji},
                    )
                self.add(kanji, similar, UNSCORED_SCORE)
                added += 1
        logger.info("Merged %d unscored similarity pairs from %s", added, path)
        return added

    def add_scored_file(self, path: Path, *, threshold: float = DEFAULT_SCORE_THRESHOLD) -> int:
        data = _load_source(path)
        added = 0
        for kanji, entries in data.items():
            if not isinstance(entries, list):
                raise SimilaritySourceError(
                    f"Scored similarity entry for {kanji!r} in {path} is not a list",
                    context={"path": str(path), "kanji": kanji},
                )
            for entry in entries:
                try:
                    similar = entry["kan"]
                    score = float(entry["score"])
                except (KeyError, TypeError, ValueError) as exc:
                    raise SimilaritySourceError(
                        f"Malformed scored similarity entry for {kanji!r} in {path}: {entry!r}",
                        context={"path": str(path), "kanji": kanji},
                    ) from exc
                if score > threshold:
                    self.add(kanji, similar, score)
                    added += 1
        logger.info("Merged %d scored similarity pairs from %s (threshold %.2f)", added, path, threshold)
        return added

    def add_source(self, source: SimilaritySource, *, threshold: float = DEFAULT_SCORE_THRESHOLD) -> int:
        if source.scored:
            return self.add_scored_file(source.path, threshold=threshold)
        return self.add_unscored_file(source.path)

    def sort(self) -> None:
        """Order each character's entries by descending fixed-point score; ties keep insertion order."""
        for kanji, entries in self._data.items():
            self._data[kanji] = sorted(entries, key=lambda e: -fixed_point_score(e.score))

    def lookup(self, kanji: str) -> list[SimilarKanji]:
        result = []
        for entry in self._data.get(kanji, []):
            subject_id = self.kanji_ids.get(entry.kan)
            if subject_id is None:
                continue
            result.append(SimilarKanji(id=subject_id, score=fixed_point_score(entry.score)))
        return result

    def to_compact(self) -> dict[str, str]:
        return {kanji: "".join(e.kan for e in entries) for kanji, entries in self._data.items()}


def _load_source(path: Path) -> dict[str, Any]:
    try:
        data = read_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SimilaritySourceError(
            f"Cannot read similarity source {path}: {exc}", context={"path": str(path)}
        ) from exc
    if not isinstance(data, dict):
        raise SimilaritySourceError(
            f"Similarity source {path} must be a JSON object", context={"path": str(path)}
        )
    return data


def build_similarity_index(
    reader: SubjectReader,
    sources: list[SimilaritySource],
    *,
    threshold: float = DEFAULT_SCORE_THRESHOLD,
) -> SimilarityIndex:
    index = SimilarityIndex.from_reader(reader)
    for source in sources:
        index.add_source(source, threshold=threshold)
    index.sort()
    return index
