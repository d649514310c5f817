from __future__ import annotations

from typing import Callable, Sequence

import pytest

from scorelens.app.models import Measure, Note, Score, Structure, StructureLevel
from scorelens.app.settings import Settings

NoteSpec = tuple[str, float]

PHRASE_A: list[list[NoteSpec]] = [
    [("C4", 1.0), ("D4", 1.0), ("E4", 1.0), ("F4", 1.0)],
    [("E4", 1.0), ("D4", 1.0), ("C4", 2.0)],
]

PHRASE_B: list[list[NoteSpec]] = [
    [("A5", 0.25), ("G5", 0.25), ("F5", 0.25), ("E5", 0.25),
     ("D5", 0.25), ("C5", 0.25), ("B4", 0.25), ("A4", 0.25)],
    [("G4", 0.25), ("F4", 0.25), ("E4", 0.5), ("R", 3.0)],
]


def build_score(measures: Sequence[Sequence[NoteSpec]], title: str = "test") -> Score:
    return Score(
        title=title,
        measures=[
            Measure(
                number=index,
                notes=[Note(pitch=pitch, duration=duration) for pitch, duration in notes],
            )
            for index, notes in enumerate(measures, start=1)
        ],
    )


def build_structure(
    structure_id: str,
    pitches: Sequence[str],
    *,
    start: int = 1,
    end: int = 1,
    duration: float = 1.0,
    level: StructureLevel = StructureLevel.PHRASE,
) -> Structure:
    return Structure(
        id=structure_id,
        level=level,
        start_measure=start,
        end_measure=end,
        notes=[Note(pitch=pitch, duration=duration) for pitch in pitches],
    )


@pytest.fixture
def aaba_score() -> Score:
    return build_score(PHRASE_A + PHRASE_A + PHRASE_B + PHRASE_A, title="aaba")


@pytest.fixture
def hash_settings() -> Settings:
    return Settings(embedding_enabled=False)


@pytest.fixture
def make_structures() -> Callable[[int], list[Structure]]:
    def _make(count: int) -> list[Structure]:
        return [
            build_structure(f"S{index}", ["C4", "D4"], start=2 * index - 1, end=2 * index)
            for index in range(1, count + 1)
        ]

    return _make
