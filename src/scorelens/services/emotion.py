"""Emotion tags and knowledge-backed confidence for analysed structures."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
from loguru import logger

from ..app.models import (
    AudioFeatureOverride,
    EmotionFeatures,
    EmotionLabel,
    Intensity,
    MusicFeatures,
    Speed,
    Structure,
    StructureEmotion,
    Tension,
    Tonality,
)
from .embeddings import EmbeddingProvider
from .features import build_profile, extract_structure_features
from .knowledge import KnowledgeBase, RuleMatch
from .types import StructureFeatures

NEUTRAL_CONFIDENCE = 0.5

_EMOTION_ORDER = [
    EmotionLabel.HAPPY,
    EmotionLabel.SAD,
    EmotionLabel.EXCITED,
    EmotionLabel.PEACEFUL,
    EmotionLabel.TENSE,
]

EMOTION_DESCRIPTORS: Dict[EmotionLabel, List[str]] = {
    EmotionLabel.HAPPY: ["major tonality", "bright timbre", "moderate tempo", "ascending melody"],
    EmotionLabel.SAD: ["minor tonality", "dark timbre", "slow tempo", "descending melody"],
    EmotionLabel.EXCITED: ["fast tempo", "strong dynamics", "frequent changes", "high energy"],
    EmotionLabel.PEACEFUL: ["slow tempo", "soft dynamics", "consonant harmony", "smooth flow"],
    EmotionLabel.TENSE: [
        "dissonant harmony",
        "strong contrasts",
        "unstable tonality",
        "irregular rhythm",
    ],
}

_LABEL_TO_FEATURES: Dict[EmotionLabel, EmotionFeatures] = {
    EmotionLabel.HAPPY: EmotionFeatures(
        speed=Speed.MODERATE, intensity=Intensity.MODERATE, tension=Tension.RELAXED
    ),
    EmotionLabel.SAD: EmotionFeatures(
        speed=Speed.SLOW, intensity=Intensity.WEAK, tension=Tension.NEUTRAL
    ),
    EmotionLabel.EXCITED: EmotionFeatures(
        speed=Speed.FAST, intensity=Intensity.STRONG, tension=Tension.NEUTRAL
    ),
    EmotionLabel.PEACEFUL: EmotionFeatures(
        speed=Speed.SLOW, intensity=Intensity.WEAK, tension=Tension.RELAXED
    ),
    EmotionLabel.TENSE: EmotionFeatures(
        speed=Speed.MODERATE, intensity=Intensity.MODERATE, tension=Tension.TENSE
    ),
}


def describe_structure(structure: Structure) -> str:
    profile = build_profile(structure)
    description = (
        f"Musical phrase from measure {structure.start_measure} to {structure.end_measure}, "
        f"{profile.tempo} tempo, {profile.contour} melodic contour"
    )
    if profile.repetitive:
        description += ", with repetitive patterns"
    return description


def confidence_from_matches(matches: Sequence[RuleMatch]) -> float:
    """Maps mean rule similarity onto [0.5, 1.0]."""
    if not matches:
        return NEUTRAL_CONFIDENCE
    mean_similarity = float(np.mean([match.similarity for match in matches]))
    confidence = NEUTRAL_CONFIDENCE + NEUTRAL_CONFIDENCE * mean_similarity
    return min(1.0, max(NEUTRAL_CONFIDENCE, confidence))


def classify_emotion(features: StructureFeatures, position: int) -> tuple[EmotionLabel, float]:
    if features.energy > 0.7 and features.brightness > 0.6:
        return EmotionLabel.EXCITED, 0.85
    if features.energy > 0.5 and features.brightness > 0.5:
        return EmotionLabel.HAPPY, 0.80
    if features.energy < 0.3 and features.brightness < 0.4:
        return EmotionLabel.SAD, 0.75
    if features.energy < 0.4 and features.brightness > 0.5:
        return EmotionLabel.PEACEFUL, 0.80
    if features.tension > 0.6:
        return EmotionLabel.TENSE, 0.75
    return _EMOTION_ORDER[position % len(_EMOTION_ORDER)], 0.70


def infer_emotion(features: MusicFeatures) -> EmotionFeatures:
    """Rule-based speed/intensity/tension triple; never touches the encoder."""
    if features.tempo > 120 or features.density > 0.7:
        speed = Speed.FAST
    elif features.tempo < 80 or features.density < 0.3:
        speed = Speed.SLOW
    else:
        speed = Speed.MODERATE

    if features.tempo > 110 and features.density > 0.5:
        intensity = Intensity.STRONG
    elif features.tempo < 90 and features.density < 0.4:
        intensity = Intensity.WEAK
    else:
        intensity = Intensity.MODERATE

    if features.harmonic_tension > 0.6 or features.tonality == Tonality.MINOR:
        tension = Tension.TENSE
    elif features.harmonic_tension < 0.4 and features.tonality == Tonality.MAJOR:
        tension = Tension.RELAXED
    else:
        tension = Tension.NEUTRAL

    return EmotionFeatures(speed=speed, intensity=intensity, tension=tension)


def emotion_features_for(label: EmotionLabel) -> EmotionFeatures:
    return _LABEL_TO_FEATURES[label].model_copy()


def _apply_override(
    features: StructureFeatures,
    override: Optional[AudioFeatureOverride],
) -> StructureFeatures:
    if override is None:
        return features
    return StructureFeatures(
        energy=override.energy if override.energy is not None else features.energy,
        brightness=override.brightness if override.brightness is not None else features.brightness,
        tension=override.tension if override.tension is not None else features.tension,
    )


def recognize_emotions(
    structures: Sequence[Structure],
    audio_data: Optional[Mapping[str, AudioFeatureOverride]] = None,
) -> List[StructureEmotion]:
    """Assigns one emotion per structure and records it on the structure."""
    overrides = audio_data or {}
    emotions: List[StructureEmotion] = []
    for position, structure in enumerate(structures):
        features = _apply_override(
            extract_structure_features(structure),
            overrides.get(structure.id),
        )
        primary, confidence = classify_emotion(features, position)
        structure.emotion = primary
        emotions.append(
            StructureEmotion(
                structure_id=structure.id,
                primary=primary,
                confidence=round(confidence, 2),
                features=list(EMOTION_DESCRIPTORS[primary]),
            )
        )
    return emotions


class EmotionAnalyzer:
    """Attaches knowledge-base confidence to structures."""

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        embeddings: EmbeddingProvider,
        *,
        top_k: int = 5,
    ) -> None:
        self._knowledge_base = knowledge_base
        self._embeddings = embeddings
        self._top_k = top_k

    async def retrieve_rules(self, query: str) -> List[RuleMatch]:
        result = await self._embeddings.embed(query)
        if result.fallback_used:
            logger.debug("Rule retrieval using fallback embedding ({})", result.reason)
        return self._knowledge_base.search_rules(result.vector, self._top_k)

    async def enhance_with_knowledge(self, structures: Sequence[Structure]) -> List[List[RuleMatch]]:
        """Sets ``confidence`` on every structure; returns the matches per structure."""
        matches_per_structure: List[List[RuleMatch]] = []
        for structure in structures:
            matches = await self.retrieve_rules(describe_structure(structure))
            structure.confidence = confidence_from_matches(matches)
            matches_per_structure.append(matches)
        return matches_per_structure
