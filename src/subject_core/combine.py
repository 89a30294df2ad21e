"""Combine loose scraped subjects into a single indexed data file.

Each subject goes through a chain of steps, every one a function that returns a new
:class:`Subject` and leaves its input untouched:

1. ``strip_fields``: drop fields the client never uses.
2. ``check_references``: every referenced subject must exist in the input store.
3. ``reorder_component_ids``: vocabulary components follow the order of the word.
4. ``sort_amalgamation_ids``: amalgamations ordered by level (optional).
5. ``unset_empty_fields``: blank hints and explanations become unset.
6. ``apply_override``: hand-written corrections.
7. ``format_markup``: mnemonic markup parsed into styled runs.
8. ``annotate_similar_kanji``: visually similar kanji attached to kanji subjects.

Cross-subject lookups only ever read from the input store.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass

from subject_core.config import PipelineConfig
from subject_core.exceptions import (
    ComponentOrderError,
    MissingReferenceError,
    SubjectDecodeError,
    SubjectNotFoundError,
)
from subject_core.logging_config import LogContext
from subject_core.markup import MARKUP_FIELDS, format_text
from subject_core.overrides import OverrideSet, apply_override, load_overrides
from subject_core.similarity import SimilarityIndex, build_similarity_index
from subject_core.store import FileStoreWriter, SubjectReader, iter_subjects, open_reader
from subject_core.subject import Subject

logger = logging.getLogger(__name__)


def strip_fields(subject: Subject) -> Subject:
    changes: dict = {"document_url": None}
    if subject.radical is not None and subject.radical.character_image is not None:
        changes["radical"] = dataclasses.replace(
            subject.radical, character_image=None, has_character_image_file=True
        )
    if subject.vocabulary is not None and subject.vocabulary.audio_urls:
        changes["vocabulary"] = dataclasses.replace(subject.vocabulary, audio_urls=[], has_audio_file=True)
    return dataclasses.replace(subject, **changes)


def check_references(subject: Subject, reader: SubjectReader) -> Subject:
    for field_name, referenced_id in subject.referenced_ids():
        if not reader.has(referenced_id):
            raise MissingReferenceError(
                f"Subject {subject.id} references missing subject {referenced_id} in {field_name}",
                subject_id=subject.id if subject.id is not None else -1,
                field_name=field_name,
                missing_id=referenced_id,
            )
    return subject


def reorder_component_ids(subject: Subject, reader: SubjectReader) -> Subject:
    """Order a vocabulary's components by where their characters appear in the word."""
    if subject.vocabulary is None:
        return subject

    character_to_id: dict[str, int] = {}
    for component_id in subject.component_subject_ids:
        character_to_id[reader.read(component_id).japanese] = component_id

    reordered: list[int] = []
    for char in subject.japanese:
        component_id = character_to_id.get(char)
        if component_id is not None and component_id not in reordered:
            reordered.append(component_id)

    if len(reordered) != len(subject.component_subject_ids):
        raise ComponentOrderError(
            f"Subject {subject.id}: different length component subject ID lists for "
            f"{subject.japanese}: {subject.component_subject_ids} vs. {reordered}",
            context={
                "subject_id": subject.id,
                "japanese": subject.japanese,
                "original": list(subject.component_subject_ids),
                "reordered": reordered,
            },
        )
    return dataclasses.replace(subject, component_subject_ids=reordered)


def sort_amalgamation_ids(subject: Subject, reader: SubjectReader) -> Subject:
    """Stable sort of amalgamations by level; unreadable IDs sort last."""
    if len(subject.amalgamation_subject_ids) < 2:
        return subject

    def level_of(subject_id: int) -> float:
        try:
            return reader.read(subject_id).level
        except (SubjectNotFoundError, SubjectDecodeError):
            return math.inf

    return dataclasses.replace(
        subject, amalgamation_subject_ids=sorted(subject.amalgamation_subject_ids, key=level_of)
    )


def _blank(text: str | None) -> bool:
    return text is not None and not text.strip()


def unset_empty_fields(subject: Subject) -> Subject:
    if subject.kanji is not None:
        kanji = subject.kanji
        changes = {name: None for name in ("meaning_hint", "reading_hint") if _blank(getattr(kanji, name))}
        if changes:
            return dataclasses.replace(subject, kanji=dataclasses.replace(kanji, **changes))
    if subject.vocabulary is not None:
        vocabulary = subject.vocabulary
        changes = {
            name: None
            for name in ("meaning_explanation", "reading_explanation")
            if _blank(getattr(vocabulary, name))
        }
        if changes:
            return dataclasses.replace(subject, vocabulary=dataclasses.replace(vocabulary, **changes))
    return subject


def format_markup(subject: Subject) -> Subject:
    """Parse raw mnemonic text into ``formatted_*`` runs and clear the raw field."""
    result = subject
    for _, kind_attr, field_name in MARKUP_FIELDS:
        payload = getattr(result, kind_attr)
        if payload is None:
            continue
        text = getattr(payload, field_name)
        if text is None:
            continue
        payload = dataclasses.replace(
            payload, **{field_name: None, f"formatted_{field_name}": format_text(text)}
        )
        result = dataclasses.replace(result, **{kind_attr: payload})
    return result


def annotate_similar_kanji(subject: Subject, index: SimilarityIndex) -> Subject:
    if subject.kanji is None:
        return subject
    similar = index.lookup(subject.japanese)
    if not similar:
        return subject
    return dataclasses.replace(subject, kanji=dataclasses.replace(subject.kanji, visually_similar_kanji=similar))


def combine_subject(
    subject: Subject,
    reader: SubjectReader,
    *,
    overrides: OverrideSet,
    index: SimilarityIndex,
    sort_amalgamations: bool = True,
) -> Subject:
    subject = strip_fields(subject)
    subject = check_references(subject, reader)
    subject = reorder_component_ids(subject, reader)
    if sort_amalgamations:
        subject = sort_amalgamation_ids(subject, reader)
    subject = unset_empty_fields(subject)
    subject = apply_override(subject, overrides)
    subject = format_markup(subject)
    return annotate_similar_kanji(subject, index)


@dataclass
class CombineSummary:
    read: int = 0
    written: int = 0
    overridden: int = 0
    annotated: int = 0


class Combiner:
    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    def run(self) -> CombineSummary:
        config = self.config
        logger.info("Combining subjects from %s into %s", config.input_path, config.output_path)
        reader = open_reader(config.input_path)
        try:
            index = build_similarity_index(
                reader, list(config.similarity_sources), threshold=config.similarity_threshold
            )
            overrides = load_overrides(config.overrides_path)
            with FileStoreWriter(config.output_path) as writer:
                summary = self._combine_all(reader, writer, overrides, index)
        finally:
            reader.close()
        logger.info(
            "Combined %d subjects (%d overridden, %d with similar kanji)",
            summary.written,
            summary.overridden,
            summary.annotated,
        )
        return summary

    def _combine_all(
        self,
        reader: SubjectReader,
        writer: FileStoreWriter,
        overrides: OverrideSet,
        index: SimilarityIndex,
    ) -> CombineSummary:
        summary = CombineSummary()
        interval = self.config.progress_interval
        for subject_id, subject in iter_subjects(reader):
            summary.read += 1
            with LogContext(subject_id=subject_id):
                combined = combine_subject(
                    subject,
                    reader,
                    overrides=overrides,
                    index=index,
                    sort_amalgamations=self.config.sort_amalgamations,
                )
                writer.write(subject_id, combined)
            summary.written += 1
            if subject_id in overrides:
                summary.overridden += 1
            if combined.kanji is not None and combined.kanji.visually_similar_kanji:
                summary.annotated += 1
            if summary.read % interval == 0:
                logger.info("Combined %d subjects (last ID %d)", summary.read, subject_id)
        return summary
