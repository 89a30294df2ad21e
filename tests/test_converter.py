"""
Tests for subject_core.converter.
"""

from __future__ import annotations

from typing import Any

import pytest

from subject_core.converter import subject_from_api
from subject_core.exceptions import ConversionError
from subject_core.subject import (
    Meaning,
    MeaningType,
    PartOfSpeech,
    Reading,
    ReadingType,
    Sentence,
    SubjectKind,
)


def _kanji_object(**data: Any) -> dict[str, Any]:
    base = {
        "level": 4,
        "slug": "火",
        "characters": "火",
        "document_url": "https://example.com/kanji/火",
        "meanings": [
            {"meaning": "Fire", "primary": True, "accepted_answer": True},
            {"meaning": "Flame", "primary": False, "accepted_answer": True},
        ],
        "auxiliary_meanings": [
            {"meaning": "Blaze", "type": "whitelist"},
            {"meaning": "Fir", "type": "blacklist"},
        ],
        "readings": [
            {"type": "onyomi", "primary": True, "reading": "か"},
            {"type": "kunyomi", "primary": False, "reading": "ひ"},
            {"type": "nanori", "primary": False, "reading": "None"},
        ],
        "component_subject_ids": [1],
        "amalgamation_subject_ids": [30, 31],
        "meaning_mnemonic": "The [radical]fire[/radical].",
        "meaning_hint": "Hot.",
        "reading_mnemonic": "Ka!",
        "reading_hint": "",
    }
    base.update(data)
    return {"id": 440, "object": "kanji", "data": base}


class TestKanjiConversion:
    def test_common_fields(self) -> None:
        subject = subject_from_api(_kanji_object())
        assert subject.id == 440
        assert subject.kind is SubjectKind.KANJI
        assert subject.level == 4
        assert subject.japanese == "火"
        assert subject.document_url == "https://example.com/kanji/火"
        assert subject.component_subject_ids == [1]
        assert subject.amalgamation_subject_ids == [30, 31]

    def test_meanings_include_auxiliary(self) -> None:
        assert subject_from_api(_kanji_object()).meanings == [
            Meaning("Fire", MeaningType.PRIMARY),
            Meaning("Flame", MeaningType.SECONDARY),
            Meaning("Blaze", MeaningType.AUXILIARY_WHITELIST),
            Meaning("Fir", MeaningType.BLACKLIST),
        ]

    def test_none_readings_dropped(self) -> None:
        assert subject_from_api(_kanji_object()).readings == [
            Reading("か", ReadingType.ONYOMI, is_primary=True),
            Reading("ひ", ReadingType.KUNYOMI),
        ]

    def test_mnemonics(self) -> None:
        kanji = subject_from_api(_kanji_object()).kanji
        assert kanji.meaning_mnemonic == "The [radical]fire[/radical]."
        assert kanji.meaning_hint == "Hot."
        assert kanji.reading_hint == ""

    def test_unknown_auxiliary_type(self) -> None:
        with pytest.raises(ConversionError) as excinfo:
            subject_from_api(_kanji_object(auxiliary_meanings=[{"meaning": "x", "type": "greylist"}]))
        assert excinfo.value.context["type"] == "greylist"


class TestRadicalConversion:
    def test_image_only_radical_picks_inline_svg(self) -> None:
        obj = {
            "id": 8761,
            "object": "radical",
            "data": {
                "level": 3,
                "slug": "leaf",
                "characters": None,
                "character_images": [
                    {"url": "https://cdn/a.png", "content_type": "image/png", "metadata": {}},
                    {"url": "https://cdn/b.svg", "content_type": "image/svg+xml", "metadata": {"inline_styles": False}},
                    {"url": "https://cdn/c.svg", "content_type": "image/svg+xml", "metadata": {"inline_styles": True}},
                ],
                "meanings": [{"meaning": "Leaf", "primary": True}],
                "amalgamation_subject_ids": [12],
                "meaning_mnemonic": "A leaf.",
            },
        }
        subject = subject_from_api(obj)
        assert subject.radical.character_image == "https://cdn/c.svg"
        assert subject.radical.mnemonic == "A leaf."
        assert subject.amalgamation_subject_ids == [12]
        assert subject.readings == []

    def test_missing_svg_is_an_error(self) -> None:
        obj = {
            "id": 9,
            "object": "radical",
            "data": {
                "level": 1,
                "character_images": [{"url": "https://cdn/a.png", "content_type": "image/png", "metadata": {}}],
            },
        }
        with pytest.raises(ConversionError):
            subject_from_api(obj)

    def test_printable_radical_has_no_image(self) -> None:
        obj = {
            "id": 1,
            "object": "radical",
            "data": {
                "level": 1,
                "characters": "一",
                "character_images": [{"url": "https://cdn/a.png", "content_type": "image/png", "metadata": {}}],
            },
        }
        assert subject_from_api(obj).radical.character_image is None


class TestVocabularyConversion:
    def test_vocabulary_fields(self) -> None:
        obj = {
            "id": 2467,
            "object": "vocabulary",
            "data": {
                "level": 1,
                "slug": "一つ",
                "characters": "一つ",
                "meanings": [{"meaning": "One Thing", "primary": True}],
                "readings": [{"primary": True, "reading": "ひとつ"}],
                "parts_of_speech": ["numeral", "な adjective"],
                "component_subject_ids": [440],
                "amalgamation_subject_ids": [999],
                "meaning_mnemonic": "One thing.",
                "reading_mnemonic": "Hitotsu.",
                "context_sentences": [{"en": "One, please.", "ja": "一つください。"}],
                "pronunciation_audios": [
                    {"url": "https://cdn/1.mp3", "content_type": "audio/mpeg"},
                    {"url": "https://cdn/1.ogg", "content_type": "audio/ogg"},
                ],
            },
        }
        subject = subject_from_api(obj)
        vocabulary = subject.vocabulary
        assert subject.kind is SubjectKind.VOCABULARY
        assert subject.amalgamation_subject_ids == []
        assert subject.readings == [Reading("ひとつ", None, is_primary=True)]
        assert vocabulary.parts_of_speech == [PartOfSpeech.NUMERAL, PartOfSpeech.NA_ADJECTIVE]
        assert vocabulary.meaning_explanation == "One thing."
        assert vocabulary.reading_explanation == "Hitotsu."
        assert vocabulary.sentences == [Sentence("一つください。", "One, please.")]
        assert vocabulary.audio_urls == ["https://cdn/1.mp3"]

    def test_unknown_part_of_speech(self) -> None:
        obj = {"id": 3, "object": "vocabulary", "data": {"level": 1, "parts_of_speech": ["gerund"]}}
        with pytest.raises(ConversionError) as excinfo:
            subject_from_api(obj)
        assert excinfo.value.context["part_of_speech"] == "gerund"


class TestMalformedObjects:
    def test_unknown_object_type(self) -> None:
        with pytest.raises(ConversionError):
            subject_from_api({"id": 1, "object": "kana", "data": {"level": 1}})

    def test_missing_keys(self) -> None:
        with pytest.raises(ConversionError):
            subject_from_api({"object": "kanji"})
