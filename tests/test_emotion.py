import pytest
from conftest import build_structure

from scorelens.app.models import (
    AudioFeatureOverride,
    EmotionLabel,
    Intensity,
    MusicFeatures,
    Speed,
    Tension,
    Tonality,
)
from scorelens.services.embeddings import HashEmbeddingProvider
from scorelens.services.emotion import (
    EMOTION_DESCRIPTORS,
    EmotionAnalyzer,
    confidence_from_matches,
    describe_structure,
    infer_emotion,
    recognize_emotions,
)
from scorelens.services.features import extract_structure_features
from scorelens.services.knowledge import KnowledgeBase


def test_structure_features_are_scaled() -> None:
    structure = build_structure("S1", ["C4", "C5", "C4", "C5", "C4", "C5", "C4", "C5", "C4"], end=2)
    features = extract_structure_features(structure)
    assert features.energy == pytest.approx(0.45)
    assert features.brightness == pytest.approx((65.333333 - 48) / 36, abs=1e-4)
    assert features.tension == pytest.approx(1.0)


def test_recognize_emotions_follows_threshold_order() -> None:
    structures = [
        build_structure("S1", ["C6"] * 24),
        build_structure("S2", ["C3", "C3"]),
        build_structure("S3", ["C6", "C6"]),
        build_structure("S4", ["C4", "C5", "C4", "C5", "C4", "C5", "C4", "C5", "C4"], end=2),
        build_structure("S5", ["C4", "D4", "E4", "D4"]),
    ]
    emotions = recognize_emotions(structures)

    assert [emotion.primary for emotion in emotions] == [
        EmotionLabel.EXCITED,
        EmotionLabel.SAD,
        EmotionLabel.PEACEFUL,
        EmotionLabel.TENSE,
        EmotionLabel.TENSE,
    ]
    assert [emotion.confidence for emotion in emotions] == [0.85, 0.75, 0.8, 0.75, 0.7]
    assert all(0.70 <= emotion.confidence <= 0.85 for emotion in emotions)
    assert emotions[0].features == EMOTION_DESCRIPTORS[EmotionLabel.EXCITED]
    assert structures[1].emotion == EmotionLabel.SAD


def test_recognize_emotions_applies_audio_overrides() -> None:
    structure = build_structure("S1", ["C3", "C3"])
    emotions = recognize_emotions(
        [structure],
        {"S1": AudioFeatureOverride(energy=0.9, brightness=0.9)},
    )
    assert emotions[0].primary == EmotionLabel.EXCITED


def test_infer_emotion_rules() -> None:
    energetic = infer_emotion(
        MusicFeatures(tempo=140, density=0.8, harmonic_tension=0.7, tonality=Tonality.MAJOR)
    )
    assert energetic.speed == Speed.FAST
    assert energetic.intensity == Intensity.STRONG
    assert energetic.tension == Tension.TENSE

    calm = infer_emotion(
        MusicFeatures(tempo=70, density=0.2, harmonic_tension=0.2, tonality=Tonality.MAJOR)
    )
    assert (calm.speed, calm.intensity, calm.tension) == (Speed.SLOW, Intensity.WEAK, Tension.RELAXED)

    middle = infer_emotion(MusicFeatures(tempo=100, density=0.5, harmonic_tension=0.5))
    assert (middle.speed, middle.intensity, middle.tension) == (
        Speed.MODERATE,
        Intensity.MODERATE,
        Tension.NEUTRAL,
    )

    minor = infer_emotion(MusicFeatures(tempo=100, harmonic_tension=0.1, tonality=Tonality.MINOR))
    assert minor.tension == Tension.TENSE


def test_describe_structure_mentions_repetition() -> None:
    structure = build_structure("S1", ["C4", "D4", "C4", "D4", "C4"], start=3, end=4, duration=2.0)
    assert describe_structure(structure) == (
        "Musical phrase from measure 3 to 4, slow tempo, wave melodic contour, "
        "with repetitive patterns"
    )


def test_confidence_defaults_to_neutral() -> None:
    assert confidence_from_matches([]) == 0.5


@pytest.mark.asyncio
async def test_enhance_with_knowledge_bounds_confidence() -> None:
    knowledge_base = KnowledgeBase()
    analyzer = EmotionAnalyzer(knowledge_base, HashEmbeddingProvider(), top_k=5)
    structures = [
        build_structure("S1", ["C4", "D4", "E4", "F4"]),
        build_structure("S2", ["G5", "F5", "E5", "D5"], duration=0.25),
        build_structure("S3", []),
    ]
    matches = await analyzer.enhance_with_knowledge(structures)
    assert [len(found) for found in matches] == [5, 5, 5]
    for structure, found in zip(structures, matches):
        assert 0.5 <= structure.confidence <= 1.0
        expected = 0.5 + 0.5 * sum(match.similarity for match in found) / len(found)
        assert structure.confidence == pytest.approx(expected)
