"""Subject records: the radical, kanji and vocabulary entries the pipeline moves around.

Every type round-trips through plain dicts (``to_dict`` / ``from_dict``) so it can be
serialised by :mod:`subject_core.codec` and patched by :mod:`subject_core.overrides`.
``to_dict`` leaves out unset optional fields (``None``), empty lists and ``False`` flags;
``from_dict`` restores those defaults, so the two are inverse for every valid subject.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from subject_core.exceptions import SubjectFormatError


class SubjectKind(str, Enum):
    RADICAL = "radical"
    KANJI = "kanji"
    VOCABULARY = "vocabulary"


class MeaningType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    AUXILIARY_WHITELIST = "whitelist"
    BLACKLIST = "blacklist"


class ReadingType(str, Enum):
    ONYOMI = "onyomi"
    KUNYOMI = "kunyomi"
    NANORI = "nanori"


class PartOfSpeech(str, Enum):
    NOUN = "noun"
    NUMERAL = "numeral"
    INTRANSITIVE_VERB = "intransitive_verb"
    ICHIDAN_VERB = "ichidan_verb"
    TRANSITIVE_VERB = "transitive_verb"
    NO_ADJECTIVE = "no_adjective"
    GODAN_VERB = "godan_verb"
    NA_ADJECTIVE = "na_adjective"
    I_ADJECTIVE = "i_adjective"
    SUFFIX = "suffix"
    ADVERB = "adverb"
    SURU_VERB = "suru_verb"
    PREFIX = "prefix"
    PROPER_NOUN = "proper_noun"
    EXPRESSION = "expression"
    ADJECTIVE = "adjective"
    INTERJECTION = "interjection"
    COUNTER = "counter"
    PRONOUN = "pronoun"
    CONJUNCTION = "conjunction"

    @classmethod
    def parse(cls, text: str) -> PartOfSpeech:
        """Parse an API part-of-speech label such as ``"な adjective"``."""
        key = text.strip().replace(" ", "_")
        key = _KANA_PART_OF_SPEECH.get(key, key)
        return cls(key)


_KANA_PART_OF_SPEECH = {
    "の_adjective": "no_adjective",
    "な_adjective": "na_adjective",
    "い_adjective": "i_adjective",
    "する_verb": "suru_verb",
}


class TextFormat(str, Enum):
    RADICAL = "radical"
    KANJI = "kanji"
    JAPANESE = "japanese"
    READING = "reading"
    VOCABULARY = "vocabulary"
    ITALIC = "italic"
    BOLD = "bold"
    LINK = "link"


def _compact(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value):
        return value.to_dict()
    if isinstance(value, list):
        return [_compact(item) for item in value]
    return value


def _to_dict(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name)
        if value is None or value is False or (isinstance(value, list) and not value):
            continue
        out[f.name] = _compact(value)
    return out


def _check_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise SubjectFormatError(
            f"{what} must be a mapping, got {type(data).__name__}",
            context={"type": what},
        )
    return data


def _check_keys(data: Mapping[str, Any], allowed: set[str], what: str) -> None:
    unknown = sorted(str(key) for key in data if key not in allowed)
    if unknown:
        raise SubjectFormatError(
            f"Unknown {what} field(s): {', '.join(unknown)}",
            context={"type": what, "fields": unknown},
        )


def _field_names(cls: type) -> set[str]:
    return {f.name for f in dataclasses.fields(cls)}


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SubjectFormatError(f"{name} must be an integer, got {value!r}", context={"field": name})
    return value


def _opt_str(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SubjectFormatError(f"{name} must be a string, got {value!r}", context={"field": name})
    return value


def _bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise SubjectFormatError(f"{name} must be a boolean, got {value!r}", context={"field": name})
    return value


def _list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SubjectFormatError(f"{name} must be a list, got {value!r}", context={"field": name})
    return value


def _enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise SubjectFormatError(
            f"Invalid {name}: {value!r}", context={"field": name, "value": value}
        ) from exc


def _id_list(value: Any, name: str) -> list[int]:
    return [_int(item, name) for item in _list(value, name)]


@dataclass
class Meaning:
    meaning: str
    type: MeaningType = MeaningType.PRIMARY

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Meaning:
        data = _check_mapping(data, "meaning")
        _check_keys(data, _field_names(cls), "meaning")
        return cls(
            meaning=_opt_str(data.get("meaning"), "meaning") or "",
            type=_enum(MeaningType, data.get("type", MeaningType.PRIMARY.value), "meaning type"),
        )


@dataclass
class Reading:
    reading: str
    type: ReadingType | None = None
    is_primary: bool = False

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Reading:
        data = _check_mapping(data, "reading")
        _check_keys(data, _field_names(cls), "reading")
        reading_type = data.get("type")
        return cls(
            reading=_opt_str(data.get("reading"), "reading") or "",
            type=_enum(ReadingType, reading_type, "reading type") if reading_type is not None else None,
            is_primary=_bool(data.get("is_primary", False), "is_primary"),
        )


@dataclass
class FormattedText:
    text: str
    format: list[TextFormat] = field(default_factory=list)
    link_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> FormattedText:
        data = _check_mapping(data, "formatted text")
        _check_keys(data, _field_names(cls), "formatted text")
        return cls(
            text=_opt_str(data.get("text"), "text") or "",
            format=[_enum(TextFormat, item, "text format") for item in _list(data.get("format"), "format")],
            link_url=_opt_str(data.get("link_url"), "link_url"),
        )


def _formatted_list(value: Any, name: str) -> list[FormattedText]:
    return [FormattedText.from_dict(item) for item in _list(value, name)]


@dataclass
class SimilarKanji:
    id: int
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score}

    @classmethod
    def from_dict(cls, data: Any) -> SimilarKanji:
        data = _check_mapping(data, "similar kanji")
        _check_keys(data, _field_names(cls), "similar kanji")
        return cls(id=_int(data.get("id"), "similar kanji id"), score=_int(data.get("score", 0), "score"))


@dataclass
class Sentence:
    japanese: str = ""
    english: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Sentence:
        data = _check_mapping(data, "sentence")
        _check_keys(data, _field_names(cls), "sentence")
        return cls(
            japanese=_opt_str(data.get("japanese"), "japanese") or "",
            english=_opt_str(data.get("english"), "english") or "",
        )


@dataclass
class Radical:
    character_image: str | None = None
    has_character_image_file: bool = False
    mnemonic: str | None = None
    formatted_mnemonic: list[FormattedText] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Radical:
        data = _check_mapping(data or {}, "radical")
        _check_keys(data, _field_names(cls), "radical")
        return cls(
            character_image=_opt_str(data.get("character_image"), "character_image"),
            has_character_image_file=_bool(
                data.get("has_character_image_file", False), "has_character_image_file"
            ),
            mnemonic=_opt_str(data.get("mnemonic"), "mnemonic"),
            formatted_mnemonic=_formatted_list(data.get("formatted_mnemonic"), "formatted_mnemonic"),
        )


@dataclass
class Kanji:
    meaning_mnemonic: str | None = None
    meaning_hint: str | None = None
    reading_mnemonic: str | None = None
    reading_hint: str | None = None
    formatted_meaning_mnemonic: list[FormattedText] = field(default_factory=list)
    formatted_meaning_hint: list[FormattedText] = field(default_factory=list)
    formatted_reading_mnemonic: list[FormattedText] = field(default_factory=list)
    formatted_reading_hint: list[FormattedText] = field(default_factory=list)
    visually_similar_kanji: list[SimilarKanji] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Kanji:
        data = _check_mapping(data or {}, "kanji")
        _check_keys(data, _field_names(cls), "kanji")
        return cls(
            meaning_mnemonic=_opt_str(data.get("meaning_mnemonic"), "meaning_mnemonic"),
            meaning_hint=_opt_str(data.get("meaning_hint"), "meaning_hint"),
            reading_mnemonic=_opt_str(data.get("reading_mnemonic"), "reading_mnemonic"),
            reading_hint=_opt_str(data.get("reading_hint"), "reading_hint"),
            formatted_meaning_mnemonic=_formatted_list(
                data.get("formatted_meaning_mnemonic"), "formatted_meaning_mnemonic"
            ),
            formatted_meaning_hint=_formatted_list(data.get("formatted_meaning_hint"), "formatted_meaning_hint"),
            formatted_reading_mnemonic=_formatted_list(
                data.get("formatted_reading_mnemonic"), "formatted_reading_mnemonic"
            ),
            formatted_reading_hint=_formatted_list(data.get("formatted_reading_hint"), "formatted_reading_hint"),
            visually_similar_kanji=[
                SimilarKanji.from_dict(item)
                for item in _list(data.get("visually_similar_kanji"), "visually_similar_kanji")
            ],
        )


@dataclass
class Vocabulary:
    meaning_explanation: str | None = None
    reading_explanation: str | None = None
    formatted_meaning_explanation: list[FormattedText] = field(default_factory=list)
    formatted_reading_explanation: list[FormattedText] = field(default_factory=list)
    parts_of_speech: list[PartOfSpeech] = field(default_factory=list)
    audio_urls: list[str] = field(default_factory=list)
    has_audio_file: bool = False
    sentences: list[Sentence] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Vocabulary:
        data = _check_mapping(data or {}, "vocabulary")
        _check_keys(data, _field_names(cls), "vocabulary")
        return cls(
            meaning_explanation=_opt_str(data.get("meaning_explanation"), "meaning_explanation"),
            reading_explanation=_opt_str(data.get("reading_explanation"), "reading_explanation"),
            formatted_meaning_explanation=_formatted_list(
                data.get("formatted_meaning_explanation"), "formatted_meaning_explanation"
            ),
            formatted_reading_explanation=_formatted_list(
                data.get("formatted_reading_explanation"), "formatted_reading_explanation"
            ),
            parts_of_speech=[
                _enum(PartOfSpeech, item, "part of speech")
                for item in _list(data.get("parts_of_speech"), "parts_of_speech")
            ],
            audio_urls=[_opt_str(item, "audio_urls") or "" for item in _list(data.get("audio_urls"), "audio_urls")],
            has_audio_file=_bool(data.get("has_audio_file", False), "has_audio_file"),
            sentences=[Sentence.from_dict(item) for item in _list(data.get("sentences"), "sentences")],
        )


@dataclass
class Subject:
    """One radical, kanji or vocabulary record.

    Exactly one of ``radical``, ``kanji`` and ``vocabulary`` is set. ``id`` is the store
    slot the subject was read from; it is never part of the serialised payload.
    """

    level: int
    slug: str = ""
    japanese: str = ""
    id: int | None = None
    document_url: str | None = None
    meanings: list[Meaning] = field(default_factory=list)
    readings: list[Reading] = field(default_factory=list)
    component_subject_ids: list[int] = field(default_factory=list)
    amalgamation_subject_ids: list[int] = field(default_factory=list)
    radical: Radical | None = None
    kanji: Kanji | None = None
    vocabulary: Vocabulary | None = None

    def __post_init__(self) -> None:
        kinds = [k for k in (self.radical, self.kanji, self.vocabulary) if k is not None]
        if len(kinds) != 1:
            raise SubjectFormatError(
                f"Subject {self.id if self.id is not None else self.slug!r} must have exactly one "
                f"of radical/kanji/vocabulary, has {len(kinds)}",
                context={"subject_id": self.id, "slug": self.slug},
            )

    @property
    def kind(self) -> SubjectKind:
        if self.radical is not None:
            return SubjectKind.RADICAL
        if self.kanji is not None:
            return SubjectKind.KANJI
        return SubjectKind.VOCABULARY

    def referenced_ids(self) -> Iterator[tuple[str, int]]:
        """Yield ``(field, id)`` for every other subject this one points at."""
        for subject_id in self.component_subject_ids:
            yield "component_subject_ids", subject_id
        for subject_id in self.amalgamation_subject_ids:
            yield "amalgamation_subject_ids", subject_id
        if self.kanji is not None:
            for similar in self.kanji.visually_similar_kanji:
                yield "visually_similar_kanji", similar.id

    def to_dict(self, *, include_id: bool = False) -> dict[str, Any]:
        out = _to_dict(self)
        if not include_id:
            out.pop("id", None)
        return out

    @classmethod
    def from_dict(cls, data: Any, *, subject_id: int | None = None) -> Subject:
        data = _check_mapping(data, "subject")
        _check_keys(data, _field_names(cls), "subject")
        if "level" not in data:
            raise SubjectFormatError("Subject is missing its level", context={"subject_id": subject_id})
        if subject_id is None and data.get("id") is not None:
            subject_id = _int(data["id"], "id")
        return cls(
            id=subject_id,
            level=_int(data["level"], "level"),
            slug=_opt_str(data.get("slug"), "slug") or "",
            japanese=_opt_str(data.get("japanese"), "japanese") or "",
            document_url=_opt_str(data.get("document_url"), "document_url"),
            meanings=[Meaning.from_dict(item) for item in _list(data.get("meanings"), "meanings")],
            readings=[Reading.from_dict(item) for item in _list(data.get("readings"), "readings")],
            component_subject_ids=_id_list(data.get("component_subject_ids"), "component_subject_ids"),
            amalgamation_subject_ids=_id_list(data.get("amalgamation_subject_ids"), "amalgamation_subject_ids"),
            radical=Radical.from_dict(data["radical"]) if data.get("radical") is not None else None,
            kanji=Kanji.from_dict(data["kanji"]) if data.get("kanji") is not None else None,
            vocabulary=Vocabulary.from_dict(data["vocabulary"]) if data.get("vocabulary") is not None else None,
        )


__all__ = [
    "FormattedText",
    "Kanji",
    "Meaning",
    "MeaningType",
    "PartOfSpeech",
    "Radical",
    "Reading",
    "ReadingType",
    "Sentence",
    "SimilarKanji",
    "Subject",
    "SubjectKind",
    "TextFormat",
    "Vocabulary",
]
