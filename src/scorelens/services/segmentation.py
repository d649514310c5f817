"""Rule-based score segmentation and pairwise relationship detection."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from ..app.models import (
    AnalysisResult,
    Measure,
    Relationship,
    RelationshipType,
    Score,
    Structure,
    StructureLevel,
)
from ..app.settings import Settings
from .features import build_profile
from .types import StructureProfile

CADENCE_MIN_BEATS = 2.0
CADENCE_RATIO = 2.0
REPEAT_THRESHOLD = 0.9
SIMILAR_THRESHOLD = 0.5
CONTRAST_OVERLAP = 0.4
PERIOD_MAX_MEASURES = 8


def level_for_span(span: int) -> StructureLevel:
    if span <= 1:
        return StructureLevel.MOTIVE
    if span == 2:
        return StructureLevel.SUB_PHRASE
    if span <= 4:
        return StructureLevel.PHRASE
    if span <= PERIOD_MAX_MEASURES:
        return StructureLevel.PERIOD
    return StructureLevel.THEME


def is_cadential(measure: Measure) -> bool:
    """A measure closes a segment when it is silent, ends on a rest, or ends on a long note."""
    notes = measure.notes
    if not notes or not any(note.sounding for note in notes):
        return True
    last = notes[-1]
    if not last.sounding:
        return True
    if last.duration < CADENCE_MIN_BEATS:
        return False
    if len(notes) == 1:
        return True
    preceding = float(np.mean([note.duration for note in notes[:-1]]))
    return last.duration >= CADENCE_RATIO * preceding


def extract_structure(
    score: Score,
    start_measure: int,
    end_measure: int,
    *,
    level: Optional[StructureLevel] = None,
    structure_id: Optional[str] = None,
) -> Optional[Structure]:
    """Slice ``score`` into a structure; ``None`` for inverted or out-of-range bounds."""
    if start_measure > end_measure:
        return None
    if start_measure < 1 or end_measure > score.total_measures:
        return None
    span = end_measure - start_measure + 1
    return Structure(
        id=structure_id or f"M{start_measure}-{end_measure}",
        level=level or level_for_span(span),
        start_measure=start_measure,
        end_measure=end_measure,
        notes=score.notes_between(start_measure, end_measure),
    )


class StructureSegmenter:
    """Partitions a score into contiguous, non-overlapping structures."""

    def __init__(self, min_measures: int = 2, max_measures: int = 4) -> None:
        self._min_measures = max(1, min_measures)
        self._max_measures = max(self._min_measures, max_measures)

    def segment(self, score: Score) -> List[Structure]:
        total = score.total_measures
        structures: List[Structure] = []
        start = 1
        for number, measure in enumerate(score.measures, start=1):
            length = number - start + 1
            closes = (
                number == total
                or length >= self._max_measures
                or (length >= self._min_measures and is_cadential(measure))
            )
            if not closes:
                continue
            structure = extract_structure(
                score, start, number, structure_id=f"S{len(structures) + 1}"
            )
            assert structure is not None
            structures.append(structure)
            start = number + 1
        return structures

    def build_periods(self, score: Score, structures: Sequence[Structure]) -> List[Structure]:
        """Pairs consecutive structures into the next hierarchy level."""
        periods: List[Structure] = []
        for offset in range(0, len(structures), 2):
            members = list(structures[offset : offset + 2])
            start = members[0].start_measure
            end = members[-1].end_measure
            level = (
                StructureLevel.PERIOD
                if end - start + 1 <= PERIOD_MAX_MEASURES
                else StructureLevel.THEME
            )
            period = extract_structure(
                score, start, end, level=level, structure_id=f"P{len(periods) + 1}"
            )
            if period is None:
                continue
            period.children = [member.id for member in members]
            periods.append(period)
        return periods


def _match_ratio(first: Sequence[float], second: Sequence[float]) -> float:
    longest = max(len(first), len(second))
    if longest == 0 or not first or not second:
        return 0.0
    matches = sum(1 for a, b in zip(first, second) if abs(a - b) < 1e-6)
    return matches / longest


class RelationshipDetector:
    """Classifies structure pairs as repeat, similar, contrast or transition."""

    def __init__(self, window: int = 8) -> None:
        self._window = max(1, window)

    def candidate_pairs(self, count: int) -> List[Tuple[int, int]]:
        pairs = [
            (first, second)
            for first in range(count)
            for second in range(first + 1, min(count, first + 1 + self._window))
        ]
        if count >= 3 and (0, count - 1) not in pairs:
            pairs.append((0, count - 1))
        return pairs

    def detect(self, structures: Sequence[Structure]) -> List[Relationship]:
        profiles = [build_profile(structure) for structure in structures]
        relationships: List[Relationship] = []
        for first, second in self.candidate_pairs(len(profiles)):
            relationship = self.compare(
                profiles[first],
                profiles[second],
                adjacent=second == first + 1,
            )
            if relationship is not None:
                relationships.append(relationship)
        return relationships

    def compare(
        self,
        first: StructureProfile,
        second: StructureProfile,
        *,
        adjacent: bool = False,
    ) -> Optional[Relationship]:
        pitch_match = _match_ratio(first.pitches, second.pitches)
        interval_match = _match_ratio(first.intervals, second.intervals)
        rhythm_match = _match_ratio(first.durations, second.durations)
        secondary = (interval_match + rhythm_match) / 2
        same_contour = first.contour == second.contour
        same_tempo = first.tempo == second.tempo
        same_repetition = first.repetitive == second.repetitive
        overlap = (float(same_contour) + float(same_tempo) + float(same_repetition) + secondary) / 4

        if pitch_match >= REPEAT_THRESHOLD:
            kind = RelationshipType.REPEAT
            score = (pitch_match + rhythm_match) / 2
            description = (
                f"pitch sequence matches {pitch_match:.0%}, rhythm matches {rhythm_match:.0%}"
            )
        elif same_contour and secondary >= SIMILAR_THRESHOLD:
            kind = RelationshipType.SIMILAR
            score = secondary
            description = (
                f"shared {first.contour} contour, intervals match {interval_match:.0%}, "
                f"rhythm matches {rhythm_match:.0%}"
            )
        elif not same_contour and overlap < CONTRAST_OVERLAP:
            kind = RelationshipType.CONTRAST
            score = overlap
            description = (
                f"{first.contour} vs {second.contour} contour, "
                f"{first.tempo} vs {second.tempo} tempo"
            )
        elif adjacent:
            kind = RelationshipType.TRANSITION
            score = overlap
            shared = [
                label
                for label, flag in (
                    (f"{first.contour} contour", same_contour),
                    (f"{first.tempo} tempo", same_tempo),
                    ("repetition profile", same_repetition),
                )
                if flag
            ]
            description = (
                "bridges neighbours sharing " + ", ".join(shared)
                if shared
                else "bridges neighbours with few shared features"
            )
        else:
            return None

        return Relationship(
            id1=first.structure_id,
            id2=second.structure_id,
            type=kind,
            similarity=round(min(1.0, max(0.0, score)), 4),
            description=description,
        )


class StructureAnalyzer:
    """Segments a score and detects relationships between its structures."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        min_measures = settings.min_phrase_measures if settings is not None else 2
        max_measures = settings.max_phrase_measures if settings is not None else 4
        window = settings.relationship_window if settings is not None else 8
        self._segmenter = StructureSegmenter(min_measures, max_measures)
        self._detector = RelationshipDetector(window)

    @property
    def segmenter(self) -> StructureSegmenter:
        return self._segmenter

    @property
    def detector(self) -> RelationshipDetector:
        return self._detector

    def analyze(self, score: Score) -> AnalysisResult:
        if score.total_measures == 0:
            logger.warning("Score has no measures; returning empty analysis")
            return AnalysisResult()
        structures = self._segmenter.segment(score)
        relationships = self._detector.detect(structures)
        periods = self._segmenter.build_periods(score, structures)
        logger.debug(
            "Segmented {} measures into {} structures, {} relationships",
            score.total_measures,
            len(structures),
            len(relationships),
        )
        return AnalysisResult(
            structures=structures,
            relationships=relationships,
            periods=periods,
        )
