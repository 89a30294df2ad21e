"""Convert subject objects from the subjects API into :class:`Subject` records."""

from __future__ import annotations

from typing import Any

from subject_core.exceptions import ConversionError, SubjectFormatError
from subject_core.subject import (
    Kanji,
    Meaning,
    MeaningType,
    PartOfSpeech,
    Radical,
    Reading,
    ReadingType,
    Sentence,
    Subject,
    Vocabulary,
)

SVG_CONTENT_TYPE = "image/svg+xml"
AUDIO_CONTENT_TYPE = "audio/mpeg"
_NO_READING = "None"
_READING_TYPES = {t.value: t for t in ReadingType}

_AUXILIARY_TYPES = {
    "whitelist": MeaningType.AUXILIARY_WHITELIST,
    "blacklist": MeaningType.BLACKLIST,
}


def _meanings(data: dict[str, Any], subject_id: int) -> list[Meaning]:
    meanings = [
        Meaning(
            meaning=item.get("meaning", ""),
            type=MeaningType.PRIMARY if item.get("primary") else MeaningType.SECONDARY,
        )
        for item in data.get("meanings") or []
    ]
    for item in data.get("auxiliary_meanings") or []:
        meaning_type = _AUXILIARY_TYPES.get(item.get("type"))
        if meaning_type is None:
            raise ConversionError(
                f"Unknown auxiliary meaning type {item.get('type')!r} on subject {subject_id}",
                context={"subject_id": subject_id, "type": item.get("type")},
            )
        meanings.append(Meaning(meaning=item.get("meaning", ""), type=meaning_type))
    return meanings


def _readings(data: dict[str, Any]) -> list[Reading]:
    readings = []
    for item in data.get("readings") or []:
        if item.get("reading") == _NO_READING:
            continue
        reading_type = item.get("type")
        readings.append(
            Reading(
                reading=item.get("reading", ""),
                type=_READING_TYPES.get(reading_type),
                is_primary=bool(item.get("primary")),
            )
        )
    return readings


def best_character_image(subject_id: int, images: list[dict[str, Any]]) -> str:
    """URL of the SVG character image with inline styles."""
    for image in images:
        metadata = image.get("metadata") or {}
        if image.get("content_type") == SVG_CONTENT_TYPE and metadata.get("inline_styles"):
            return image["url"]
    raise ConversionError(
        f"No SVG character image found for radical {subject_id}",
        context={"subject_id": subject_id, "images": len(images)},
    )


def _radical(subject_id: int, data: dict[str, Any]) -> Radical:
    images = data.get("character_images") or []
    # Radicals with a printable character don't need the image.
    needs_image = not data.get("characters") and images
    return Radical(
        character_image=best_character_image(subject_id, images) if needs_image else None,
        mnemonic=data.get("meaning_mnemonic"),
    )


def _parts_of_speech(subject_id: int, data: dict[str, Any]) -> list[PartOfSpeech]:
    parts = []
    for label in data.get("parts_of_speech") or []:
        try:
            parts.append(PartOfSpeech.parse(label))
        except ValueError:
            raise ConversionError(
                f"Unknown part of speech {label!r} on subject {subject_id}",
                context={"subject_id": subject_id, "part_of_speech": label},
            ) from None
    return parts


def _vocabulary(subject_id: int, data: dict[str, Any]) -> Vocabulary:
    return Vocabulary(
        meaning_explanation=data.get("meaning_mnemonic"),
        reading_explanation=data.get("reading_mnemonic"),
        parts_of_speech=_parts_of_speech(subject_id, data),
        audio_urls=[
            audio["url"]
            for audio in data.get("pronunciation_audios") or []
            if audio.get("content_type") == AUDIO_CONTENT_TYPE and audio.get("url")
        ],
        sentences=[
            Sentence(japanese=item.get("ja", ""), english=item.get("en", ""))
            for item in data.get("context_sentences") or []
        ],
    )


def subject_from_api(obj: dict[str, Any]) -> Subject:
    """Build a subject from one ``{"id", "object", "data"}`` API resource."""
    try:
        subject_id = int(obj["id"])
        kind = obj["object"]
        data = obj["data"]
    except (KeyError, TypeError, ValueError) as exc:
        keys = sorted(obj) if isinstance(obj, dict) else []
        raise ConversionError(f"Malformed subject object: {exc}", context={"keys": keys}) from exc

    kwargs: dict[str, Any] = {}
    if kind == "radical":
        kwargs["radical"] = _radical(subject_id, data)
    elif kind == "kanji":
        kwargs["kanji"] = Kanji(
            meaning_mnemonic=data.get("meaning_mnemonic"),
            meaning_hint=data.get("meaning_hint"),
            reading_mnemonic=data.get("reading_mnemonic"),
            reading_hint=data.get("reading_hint"),
        )
    elif kind == "vocabulary":
        kwargs["vocabulary"] = _vocabulary(subject_id, data)
    else:
        raise ConversionError(
            f"Unknown subject type {kind!r} for subject {subject_id}",
            context={"subject_id": subject_id, "object": kind},
        )

    if kind in ("kanji", "vocabulary"):
        kwargs["readings"] = _readings(data)
        kwargs["component_subject_ids"] = list(data.get("component_subject_ids") or [])
    if kind in ("radical", "kanji"):
        kwargs["amalgamation_subject_ids"] = list(data.get("amalgamation_subject_ids") or [])

    try:
        return Subject(
            id=subject_id,
            level=int(data.get("level", 0)),
            slug=data.get("slug") or "",
            japanese=data.get("character") or data.get("characters") or "",
            document_url=data.get("document_url"),
            meanings=_meanings(data, subject_id),
            **kwargs,
        )
    except SubjectFormatError as exc:
        raise ConversionError(exc.message, context={"subject_id": subject_id, **exc.context}) from exc
