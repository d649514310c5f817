from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

REST_PITCHES = frozenset({"r", "rest"})


class StructureLevel(str, Enum):
    MOTIVE = "motive"
    SUB_PHRASE = "sub_phrase"
    PHRASE = "phrase"
    PERIOD = "period"
    THEME = "theme"


class RelationshipType(str, Enum):
    REPEAT = "repeat"
    SIMILAR = "similar"
    CONTRAST = "contrast"
    TRANSITION = "transition"


class RuleCategory(str, Enum):
    CADENCE = "cadence"
    PHRASE = "phrase"
    FORM = "form"
    TONALITY = "tonality"
    TEXTURE = "texture"
    RHYTHM = "rhythm"
    MELODY = "melody"


class EmotionLabel(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    EXCITED = "excited"
    PEACEFUL = "peaceful"
    TENSE = "tense"


class Speed(str, Enum):
    FAST = "fast"
    MODERATE = "moderate"
    SLOW = "slow"


class Intensity(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class Tension(str, Enum):
    TENSE = "tense"
    NEUTRAL = "neutral"
    RELAXED = "relaxed"


class Tonality(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    AMBIGUOUS = "ambiguous"


class UserActionType(str, Enum):
    ACCEPT = "accept"
    MODIFY = "modify"
    REJECT = "reject"


class Note(BaseModel):
    pitch: str = "C4"
    duration: float = Field(default=1.0, ge=0.0)
    is_rest: bool = Field(default=False)

    @property
    def sounding(self) -> bool:
        return not self.is_rest and self.pitch.strip().lower() not in REST_PITCHES


class Measure(BaseModel):
    number: Optional[int] = Field(default=None, ge=0)
    notes: list[Note] = Field(default_factory=list)


class Score(BaseModel):
    title: Optional[str] = None
    measures: list[Measure] = Field(default_factory=list)

    @property
    def total_measures(self) -> int:
        return len(self.measures)

    def notes_between(self, start_measure: int, end_measure: int) -> list[Note]:
        """Notes of measures ``start_measure``..``end_measure`` (1-indexed, inclusive)."""
        if start_measure > end_measure:
            return []
        window = self.measures[max(start_measure - 1, 0) : max(end_measure, 0)]
        return [note.model_copy() for measure in window for note in measure.notes]


class Structure(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    level: StructureLevel
    start_measure: int = Field(..., ge=1)
    end_measure: int = Field(..., ge=1)
    notes: list[Note] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    emotion: Optional[EmotionLabel] = None
    group_id: Optional[str] = Field(default=None, max_length=8)
    children: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Structure":
        if self.start_measure > self.end_measure:
            raise ValueError("start_measure must not exceed end_measure")
        return self

    @property
    def measure_span(self) -> int:
        return self.end_measure - self.start_measure + 1


class Relationship(BaseModel):
    id1: str
    id2: str
    type: RelationshipType
    similarity: float = Field(..., ge=0.0, le=1.0)
    description: str = ""

    def involves(self, structure_id: str) -> bool:
        return structure_id in (self.id1, self.id2)

    def connects(self, first: str, second: str) -> bool:
        return {self.id1, self.id2} == {first, second}


class EmotionFeatures(BaseModel):
    speed: Speed = Speed.MODERATE
    intensity: Intensity = Intensity.MODERATE
    tension: Tension = Tension.NEUTRAL


class MusicFeatures(BaseModel):
    tempo: float = Field(default=100.0, gt=0.0, le=400.0)
    density: float = Field(default=0.5, ge=0.0, le=1.0)
    harmonic_tension: float = Field(default=0.5, ge=0.0, le=1.0)
    tonality: Tonality = Tonality.AMBIGUOUS


class AudioFeatureOverride(BaseModel):
    energy: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    brightness: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    tension: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class StructureEmotion(BaseModel):
    structure_id: str
    primary: EmotionLabel
    confidence: float = Field(..., ge=0.0, le=1.0)
    features: list[str] = Field(default_factory=list)


class AnimationSpec(BaseModel):
    type: str
    duration: int = Field(..., ge=0)
    easing: str = "ease-in-out"


class VisualElement(BaseModel):
    id: str
    type: str
    color: str
    size: int = Field(..., gt=0)
    animation: AnimationSpec


class VisualScheme(BaseModel):
    id: str
    elements: list[VisualElement] = Field(default_factory=list)
    layout: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class SimilarityGroup(BaseModel):
    group_id: str
    structure_ids: list[str]
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    common_features: list[str] = Field(default_factory=list)
    synthetic: bool = False


class UserAction(BaseModel):
    action: UserActionType
    scheme_id: Optional[str] = Field(default=None, max_length=64)
    scheme: Optional[VisualScheme] = None
    tokens: list[str] = Field(default_factory=list)


class PreferenceStatistics(BaseModel):
    total_actions: int = 0
    accepted: int = 0
    modified: int = 0
    rejected: int = 0
    tracked_tokens: int = 0
    positive_tokens: int = 0
    negative_tokens: int = 0


class AnalysisResult(BaseModel):
    structures: list[Structure] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    periods: list[Structure] = Field(default_factory=list)
    form: Optional[str] = None
    groups: list[SimilarityGroup] = Field(default_factory=list)
    emotions: list[StructureEmotion] = Field(default_factory=list)


class StructuresRequest(BaseModel):
    structures: list[Structure]
    relationships: Optional[list[Relationship]] = None


class RecognizeRequest(BaseModel):
    structures: list[Structure]
    audio_data: dict[str, AudioFeatureOverride] = Field(default_factory=dict)


class RecommendationRequest(BaseModel):
    emotion: EmotionFeatures = Field(default_factory=EmotionFeatures)
    level: StructureLevel = StructureLevel.PHRASE
    preferences: Optional[dict[str, float]] = None
    structure_id: Optional[str] = Field(default=None, max_length=32)
    relationships: list[Relationship] = Field(default_factory=list)


class SessionRecommendationRequest(BaseModel):
    emotion: EmotionFeatures = Field(default_factory=EmotionFeatures)
    level: StructureLevel = StructureLevel.PHRASE
    structure_id: Optional[str] = Field(default=None, max_length=32)


class SessionCreateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=64)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class SessionSummary(BaseModel):
    session_id: str
    created_at: datetime
    updated_at: datetime = Field(default_factory=_utc_now)
    name: Optional[str] = None
    preferences: dict[str, float] = Field(default_factory=dict)
    statistics: PreferenceStatistics = Field(default_factory=PreferenceStatistics)
    last_form: Optional[str] = None
    structure_count: int = 0
    extras: dict[str, Any] = Field(default_factory=dict)
