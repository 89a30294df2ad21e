"""Mnemonic markup: ``[kanji]火[/kanji]``-style tags turned into styled text runs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from subject_core.subject import FormattedText, Subject, TextFormat

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(
    r"([^\[<]*?)"
    r"[\[<]"
    r"(/?(?:vocabulary|reading|ja|jp|kanji|radical|b|em|i|strong|kan|a))"
    r'(?: href="([^"]+?)"[^>]*?)?'
    r"[\]>]"
)

_TAG_FORMATS = {
    "radical": TextFormat.RADICAL,
    "kanji": TextFormat.KANJI,
    "kan": TextFormat.KANJI,
    "ja": TextFormat.JAPANESE,
    "jp": TextFormat.JAPANESE,
    "reading": TextFormat.READING,
    "vocabulary": TextFormat.VOCABULARY,
    "i": TextFormat.ITALIC,
    "b": TextFormat.BOLD,
    "em": TextFormat.BOLD,
    "strong": TextFormat.BOLD,
    "a": TextFormat.LINK,
}

# (field label, kind attribute, raw field)
MARKUP_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("mnemonic", "radical", "mnemonic"),
    ("meaning mnemonic", "kanji", "meaning_mnemonic"),
    ("meaning hint", "kanji", "meaning_hint"),
    ("reading mnemonic", "kanji", "reading_mnemonic"),
    ("reading hint", "kanji", "reading_hint"),
    ("meaning explanation", "vocabulary", "meaning_explanation"),
    ("reading explanation", "vocabulary", "reading_explanation"),
)


def format_text(text: str) -> list[FormattedText]:
    runs: list[FormattedText] = []
    format_stack: list[TextFormat] = []
    link_stack: list[str] = []

    def emit(chunk: str) -> None:
        if chunk:
            runs.append(
                FormattedText(
                    text=chunk,
                    format=list(format_stack),
                    link_url=link_stack[-1] if link_stack else None,
                )
            )

    last_end = 0
    for match in _TAG_RE.finditer(text):
        # Anything between the previous tag and this match is an unrecognised bracket,
        # kept as literal text.
        emit(text[last_end : match.start(2) - 1])
        last_end = match.end()

        tag = match.group(2)
        if tag.startswith("/"):
            if not format_stack:
                logger.debug("Ignoring closing tag [%s] with nothing open", tag)
                continue
            if format_stack.pop() is TextFormat.LINK and link_stack:
                link_stack.pop()
            continue

        fmt = _TAG_FORMATS[tag]
        format_stack.append(fmt)
        if fmt is TextFormat.LINK:
            link_stack.append(match.group(3) or "")

    emit(text[last_end:])
    return runs


def lint_text(text: str) -> list[str]:
    """Return a description of every bracket-tag nesting problem in ``text``."""
    problems: list[str] = []
    stack: list[str] = []
    rest = text
    while True:
        pos = rest.find("[")
        if pos == -1:
            break
        rest = rest[pos + 1 :]
        end = rest.find("]")
        if end == -1:
            problems.append("Missing end bracket")
            break
        tag = rest[:end]
        rest = rest[end + 1 :]
        if not tag.startswith("/"):
            stack.append(tag)
            continue
        tag = tag[1:]
        if not stack:
            problems.append(f"Closing tag [/{tag}] without opening tag")
            break
        top = stack.pop()
        if tag != top:
            problems.append(f"Mismatching closing tag [/{tag}] for opening tag [{top}]")
            break
    if not problems and stack:
        problems.append(f"Unclosed tag [{stack[-1]}]")
    return problems


@dataclass
class LintProblem:
    subject_id: int | None
    field: str
    reason: str
    text: str

    def render(self) -> str:
        body = "\n  ".join(self.text.split("\n"))
        return f"{self.subject_id} {self.field}\n{self.reason}\n  {body}\n"


def lint_subject(subject: Subject) -> list[LintProblem]:
    problems = []
    for label, kind_attr, field_name in MARKUP_FIELDS:
        payload = getattr(subject, kind_attr)
        if payload is None:
            continue
        text = getattr(payload, field_name)
        if not text:
            continue
        for reason in lint_text(text):
            problems.append(LintProblem(subject.id, label, reason, text))
    return problems
