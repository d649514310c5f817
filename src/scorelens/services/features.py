"""Symbolic feature extraction shared by segmentation and emotion inference."""

from __future__ import annotations

import re
from typing import Sequence

import numpy as np

from ..app.models import Note, Structure
from .types import StructureFeatures, StructureProfile

DEFAULT_MIDI = 60
FAST_DURATION = 0.5
SLOW_DURATION = 1.5
CONTOUR_BIAS = 1.5
BRIGHTNESS_LOW = 48
BRIGHTNESS_SPAN = 36
OCTAVE = 12
DENSITY_SCALE = 10.0

_PITCH_PATTERN = re.compile(r"^([A-Ga-g])(##|bb|#|b)?(-?\d+)?$")
_PITCH_CLASSES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_ACCIDENTALS = {None: 0, "#": 1, "##": 2, "b": -1, "bb": -2}


def pitch_to_midi(pitch: str) -> int:
    """MIDI number for ``pitch`` (``C4`` = 60); unparseable names map to 60."""
    match = _PITCH_PATTERN.match(pitch.strip())
    if match is None:
        return DEFAULT_MIDI
    letter, accidental, octave = match.groups()
    octave_number = int(octave) if octave is not None else 4
    return (octave_number + 1) * OCTAVE + _PITCH_CLASSES[letter.upper()] + _ACCIDENTALS[accidental]


def sounding_notes(notes: Sequence[Note]) -> list[Note]:
    return [note for note in notes if note.sounding]


def midi_sequence(notes: Sequence[Note]) -> list[int]:
    return [pitch_to_midi(note.pitch) for note in sounding_notes(notes)]


def melodic_contour(pitches: Sequence[int]) -> str:
    if len(pitches) < 2:
        return "stable"
    ascending = 0
    descending = 0
    for previous, current in zip(pitches, pitches[1:]):
        if current > previous:
            ascending += 1
        elif current < previous:
            descending += 1
    if ascending > descending * CONTOUR_BIAS:
        return "ascending"
    if descending > ascending * CONTOUR_BIAS:
        return "descending"
    return "wave"


def has_repetition(pitches: Sequence[int]) -> bool:
    """True when a 2-4 note pattern occurs at least twice without overlapping."""
    if len(pitches) < 4:
        return False
    for length in range(2, 5):
        first_seen: dict[tuple[int, ...], int] = {}
        for start in range(len(pitches) - length + 1):
            pattern = tuple(pitches[start : start + length])
            earlier = first_seen.setdefault(pattern, start)
            if start - earlier >= length:
                return True
    return False


def tempo_bucket(durations: Sequence[float]) -> str:
    mean_duration = float(np.mean(durations)) if len(durations) else 1.0
    if mean_duration < FAST_DURATION:
        return "fast"
    if mean_duration > SLOW_DURATION:
        return "slow"
    return "moderate"


def build_profile(structure: Structure) -> StructureProfile:
    notes = sounding_notes(structure.notes)
    pitches = tuple(pitch_to_midi(note.pitch) for note in notes)
    durations = tuple(float(note.duration) for note in notes)
    return StructureProfile(
        structure_id=structure.id,
        pitches=pitches,
        durations=durations,
        contour=melodic_contour(pitches),
        tempo=tempo_bucket(durations),
        repetitive=has_repetition(pitches),
    )


def extract_structure_features(structure: Structure) -> StructureFeatures:
    """Energy, brightness and tension scalars in [0, 1] for one structure."""
    pitches = midi_sequence(structure.notes)
    density = len(pitches) / structure.measure_span
    energy = min(1.0, density / DENSITY_SCALE)

    mean_pitch = float(np.mean(pitches)) if pitches else float(DEFAULT_MIDI)
    brightness = min(1.0, max(0.0, (mean_pitch - BRIGHTNESS_LOW) / BRIGHTNESS_SPAN))

    tension = 0.5
    if len(pitches) > 1:
        intervals = np.abs(np.diff(np.asarray(pitches, dtype=np.float64)))
        tension = min(1.0, float(intervals.mean()) / OCTAVE)

    return StructureFeatures(energy=energy, brightness=brightness, tension=tension)
