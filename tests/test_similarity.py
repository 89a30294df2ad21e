"""
Tests for subject_core.similarity.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from subject_core.exceptions import SimilaritySourceError
from subject_core.similarity import (
    SimilarityIndex,
    SimilaritySource,
    build_similarity_index,
    fixed_point_score,
)
from subject_core.store import DirectoryStore
from subject_core.subject import SimilarKanji


class TestSimilarityIndex:
    def test_unscored_then_scored_keeps_higher_score(self, tmp_path: Path, json_writer) -> None:
        """A weaker scored entry never lowers an unscored pair."""
        unscored = json_writer(tmp_path / "manual.json", {"火": ["灯"]})
        scored = json_writer(tmp_path / "scored.json", {"火": [{"kan": "灯", "score": 0.3}]})
        index = SimilarityIndex({"灯": 2})
        index.add_unscored_file(unscored)
        index.add_scored_file(scored, threshold=0.0)
        assert index.lookup("火") == [SimilarKanji(id=2, score=1000)]

    def test_later_source_can_raise_score(self) -> None:
        index = SimilarityIndex({"灯": 2})
        index.add("火", "灯", 0.5)
        index.add("火", "灯", 0.9)
        assert index.lookup("火") == [SimilarKanji(id=2, score=900)]

    def test_sort_is_descending(self) -> None:
        index = SimilarityIndex({"a": 1, "b": 2, "c": 3})
        index.add("x", "a", 0.5)
        index.add("x", "b", 0.9)
        index.add("x", "c", 0.7)
        index.sort()
        assert [s.id for s in index.lookup("x")] == [2, 3, 1]

    def test_sort_keeps_insertion_order_for_equal_fixed_point_scores(self) -> None:
        """0.5001 and 0.5009 both truncate to 500 and stay in insertion order."""
        index = SimilarityIndex({"a": 1, "b": 2, "c": 3})
        index.add("x", "a", 0.5001)
        index.add("x", "b", 0.5009)
        index.add("x", "c", 0.5)
        index.sort()
        assert [s.id for s in index.lookup("x")] == [1, 2, 3]
        assert {s.score for s in index.lookup("x")} == {500}

    def test_lookup_drops_characters_without_subjects(self) -> None:
        index = SimilarityIndex({"灯": 2})
        index.add("火", "灯", 1.0)
        index.add("火", "炎", 1.0)
        assert index.lookup("火") == [SimilarKanji(id=2, score=1000)]
        assert index.lookup("水") == []

    def test_scored_threshold_is_exclusive(self, tmp_path: Path, json_writer) -> None:
        scored = json_writer(
            tmp_path / "scored.json",
            {"火": [{"kan": "灯", "score": 0.4}, {"kan": "炎", "score": 0.41}]},
        )
        index = SimilarityIndex()
        assert index.add_scored_file(scored) == 1
        assert index.to_compact() == {"火": "炎"}

    def test_to_compact(self) -> None:
        index = SimilarityIndex()
        index.add("火", "灯", 1.0)
        index.add("火", "炎", 1.0)
        assert index.to_compact() == {"火": "灯炎"}
        assert len(index) == 1

    def test_fixed_point_score_truncates(self) -> None:
        assert fixed_point_score(0.9999) == 999
        assert fixed_point_score(1.0) == 1000


class TestSimilaritySources:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SimilaritySourceError) as excinfo:
            SimilarityIndex().add_unscored_file(tmp_path / "missing.json")
        assert excinfo.value.context["path"] == str(tmp_path / "missing.json")

    def test_not_an_object(self, tmp_path: Path, json_writer) -> None:
        with pytest.raises(SimilaritySourceError):
            SimilarityIndex().add_unscored_file(json_writer(tmp_path / "bad.json", ["火"]))

    def test_malformed_scored_entry(self, tmp_path: Path, json_writer) -> None:
        path = json_writer(tmp_path / "bad.json", {"火": [{"kanji": "灯"}]})
        with pytest.raises(SimilaritySourceError):
            SimilarityIndex().add_scored_file(path)

    def test_source_from_dict_resolves_relative_paths(self, tmp_path: Path) -> None:
        source = SimilaritySource.from_dict({"path": "sim.json", "scored": True}, base_dir=tmp_path)
        assert source == SimilaritySource(tmp_path / "sim.json", scored=True)

    def test_build_from_store(self, tmp_path: Path, volcano_store: DirectoryStore, json_writer) -> None:
        """Kanji IDs come from the store; sources apply in order."""
        first = json_writer(tmp_path / "a.json", {"火": ["山"]})
        second = json_writer(tmp_path / "b.json", {"山": [{"kan": "火", "score": 0.8}]})
        index = build_similarity_index(
            volcano_store,
            [SimilaritySource(first), SimilaritySource(second, scored=True)],
        )
        assert index.kanji_ids == {"山": 10, "火": 20}
        assert index.lookup("火") == [SimilarKanji(id=10, score=1000)]
        assert index.lookup("山") == [SimilarKanji(id=20, score=800)]
