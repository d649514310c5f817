"""Visual scheme recommendations conditioned on emotion, structure and preferences."""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from ..app.models import (
    AnimationSpec,
    EmotionFeatures,
    Intensity,
    Relationship,
    Speed,
    StructureLevel,
    Tension,
    VisualElement,
    VisualScheme,
)

SCHEME_COUNT = 5
SHAPES = ["circle", "square", "triangle", "star", "wave", "diamond", "hexagon"]
ANIMATIONS = ["flash", "rotate", "bounce", "scale", "slide"]
LAYOUTS = ["horizontal", "circular", "vertical", "grid", "horizontal"]

WARM_COLORS = ["#FF6B6B", "#FF8E53", "#FFA600", "#FF4757", "#FF6348"]
COOL_COLORS = ["#4ECDC4", "#45B7D1", "#96CEB4", "#74B9FF", "#81ECEC"]
TENSE_COLORS = ["#A04668", "#D84797", "#8E44AD", "#9B59B6", "#6C5CE7"]
BALANCED_COLORS = ["#3498DB", "#2ECC71", "#F39C12", "#1ABC9C", "#E74C3C"]


def palette_for(emotion: EmotionFeatures) -> List[str]:
    if emotion.speed == Speed.FAST and emotion.intensity == Intensity.STRONG:
        return list(WARM_COLORS)
    if emotion.speed == Speed.SLOW and emotion.intensity == Intensity.WEAK:
        return list(COOL_COLORS)
    if emotion.tension == Tension.TENSE:
        return list(TENSE_COLORS)
    return list(BALANCED_COLORS)


def rank_by_preference(candidates: Sequence[str], preferences: Optional[Mapping[str, float]]) -> List[str]:
    """Stable descending sort by preference weight; unknown tokens weigh 0."""
    if not preferences:
        return list(candidates)
    return sorted(candidates, key=lambda token: -preferences.get(token, 0.0))


def relationship_type_for(
    structure_id: Optional[str],
    relationships: Sequence[Relationship],
) -> str:
    if structure_id is None:
        return "default"
    for relationship in relationships:
        if relationship.involves(structure_id):
            return relationship.type.value
    return "default"


def _indices(kind: str, scheme_index: int, element_index: int) -> tuple[int, int]:
    i, j = scheme_index, element_index
    if kind == "repeat":
        return i, j
    if kind == "contrast":
        return i * 2 + j, i + j * 2
    if kind == "similar":
        return i + j, i + j
    return i * 3 + j, j * 2


def scheme_tokens(scheme: VisualScheme) -> List[str]:
    """Shape, animation and colour tokens of a scheme in first-seen order."""
    tokens: dict[str, None] = {}
    for element in scheme.elements:
        tokens.setdefault(element.type, None)
        tokens.setdefault(element.animation.type, None)
        tokens.setdefault(element.color, None)
    return list(tokens)


class VisualRecommender:
    """Deterministic generator of five ranked visual schemes."""

    def __init__(self, default_animation_ms: int = 1000) -> None:
        self._default_animation_ms = default_animation_ms

    def recommend(
        self,
        emotion: EmotionFeatures,
        structure_level: StructureLevel | str,
        preferences: Optional[Mapping[str, float]] = None,
        structure_id: Optional[str] = None,
        relationships: Sequence[Relationship] = (),
    ) -> List[VisualScheme]:
        level = StructureLevel(structure_level)
        element_count = 1 if level == StructureLevel.MOTIVE else 3
        colors = palette_for(emotion)
        shapes = rank_by_preference(SHAPES, preferences)
        animations = rank_by_preference(ANIMATIONS, preferences)
        kind = relationship_type_for(structure_id, relationships)

        schemes: List[VisualScheme] = []
        for scheme_index in range(SCHEME_COUNT):
            elements: List[VisualElement] = []
            for element_index in range(element_count):
                shape_index, color_index = _indices(kind, scheme_index, element_index)
                elements.append(
                    VisualElement(
                        id=f"element_{element_index + 1}",
                        type=shapes[shape_index % len(shapes)],
                        color=colors[color_index % len(colors)],
                        size=60 + element_index * 10,
                        animation=AnimationSpec(
                            type=animations[element_index % len(animations)],
                            duration=self._default_animation_ms + element_index * 200,
                            easing="ease-in-out",
                        ),
                    )
                )
            schemes.append(
                VisualScheme(
                    id=f"scheme_{scheme_index + 1}",
                    elements=elements,
                    layout=LAYOUTS[scheme_index],
                    confidence=round(0.95 - 0.05 * scheme_index, 2),
                )
            )
        return schemes
