"""
Shared pytest fixtures for subject pipeline tests.

Provides common fixtures for:
- Subject factories
- Populated directory stores
- Similarity source files
- Deterministic clocks
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

from subject_core.logging_config import clear_log_context  # noqa: E402
from subject_core.store import DirectoryStore  # noqa: E402
from subject_core.subject import (  # noqa: E402
    Kanji,
    Meaning,
    Radical,
    Reading,
    ReadingType,
    Subject,
    Vocabulary,
)


# =============================================================================
# Subject factories
# =============================================================================


def make_radical(subject_id: int | None = None, japanese: str = "一", level: int = 1, **kwargs: Any) -> Subject:
    kwargs.setdefault("radical", Radical())
    kwargs.setdefault("slug", f"radical-{japanese}")
    kwargs.setdefault("meanings", [Meaning(meaning="Ground")])
    return Subject(id=subject_id, level=level, japanese=japanese, **kwargs)


def make_kanji(subject_id: int | None = None, japanese: str = "火", level: int = 1, **kwargs: Any) -> Subject:
    kwargs.setdefault("kanji", Kanji())
    kwargs.setdefault("slug", japanese)
    kwargs.setdefault("meanings", [Meaning(meaning="Fire")])
    kwargs.setdefault("readings", [Reading(reading="か", type=ReadingType.ONYOMI, is_primary=True)])
    return Subject(id=subject_id, level=level, japanese=japanese, **kwargs)


def make_vocabulary(
    subject_id: int | None = None, japanese: str = "火山", level: int = 2, **kwargs: Any
) -> Subject:
    kwargs.setdefault("vocabulary", Vocabulary())
    kwargs.setdefault("slug", japanese)
    kwargs.setdefault("meanings", [Meaning(meaning="Volcano")])
    kwargs.setdefault("readings", [Reading(reading="かざん", is_primary=True)])
    return Subject(id=subject_id, level=level, japanese=japanese, **kwargs)


@pytest.fixture
def radical_factory() -> Callable[..., Subject]:
    return make_radical


@pytest.fixture
def kanji_factory() -> Callable[..., Subject]:
    return make_kanji


@pytest.fixture
def vocabulary_factory() -> Callable[..., Subject]:
    return make_vocabulary


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def volcano_store(input_dir: Path) -> DirectoryStore:
    """A small corpus: two kanji and the vocabulary built from them.

    Subject 10 is 山 (level 1), 20 is 火 (level 1) and 30 is 火山 (level 2), whose
    components are listed in the wrong order.
    """
    store = DirectoryStore(input_dir)
    store.write(10, make_kanji(japanese="山", amalgamation_subject_ids=[30]))
    store.write(20, make_kanji(japanese="火", amalgamation_subject_ids=[30]))
    store.write(30, make_vocabulary(japanese="火山", component_subject_ids=[10, 20]))
    return store


def write_json(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def json_writer() -> Callable[[Path, Any], Path]:
    return write_json


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_log_context() -> Generator[None, None, None]:
    clear_log_context()
    yield
    clear_log_context()


# =============================================================================
# Rate limiter fixtures
# =============================================================================


class DeterministicClock:
    """A clock that advances only when explicitly told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.time = start
        self.sleep_calls: list[float] = []

    def __call__(self) -> float:
        return self.time

    def advance(self, seconds: float) -> None:
        self.time += seconds

    def sleep(self, seconds: float) -> None:
        """Fake sleep that records calls and advances time."""
        self.sleep_calls.append(seconds)
        self.advance(seconds)


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()
