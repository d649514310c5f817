"""Similarity grouping of structures and large-scale form identification."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from loguru import logger

from ..app.models import Relationship, RelationshipType, SimilarityGroup, Structure

GROUP_LABELS = ["A", "B", "C", "D", "E"]
MIN_GROUPING_STRUCTURES = 4
SIMILAR_GROUP_THRESHOLD = 0.6

TERNARY = "Ternary Form (ABA)"
RONDO = "Rondo Form (ABACA)"
BINARY = "Binary Form (AB)"
SONATA = "Sonata Form"
RONDO_BY_COUNT = "Rondo Form"
THROUGH_COMPOSED = "Through-composed Form"


def _qualifies(relationship: Relationship) -> bool:
    if relationship.type == RelationshipType.REPEAT:
        return True
    return (
        relationship.type == RelationshipType.SIMILAR
        and relationship.similarity > SIMILAR_GROUP_THRESHOLD
    )


def group_by_relationships(
    structures: Sequence[Structure],
    relationships: Sequence[Relationship],
) -> List[SimilarityGroup]:
    """Greedy walk over strong relationships, opening a labelled group per new pair."""
    groups: List[SimilarityGroup] = []
    assigned: set[str] = set()
    for relationship in relationships:
        if not _qualifies(relationship):
            continue
        if relationship.id1 in assigned and relationship.id2 in assigned:
            continue
        members = [
            structure_id
            for structure_id in dict.fromkeys((relationship.id1, relationship.id2))
            if structure_id not in assigned
        ]
        assigned.update(members)
        groups.append(
            SimilarityGroup(
                group_id=GROUP_LABELS[len(groups) % len(GROUP_LABELS)],
                structure_ids=members,
                similarity_score=relationship.similarity,
                common_features=[relationship.description],
            )
        )

    labels = {
        structure_id: group.group_id for group in groups for structure_id in group.structure_ids
    }
    for structure in structures:
        if structure.id in labels:
            structure.group_id = labels[structure.id]
    return groups


def group_by_position(structures: Sequence[Structure]) -> List[SimilarityGroup]:
    """Three overlapping positional windows; scores are synthetic, not measured."""
    groups: List[SimilarityGroup] = []
    window = len(structures) // 3
    for index in range(min(3, math.ceil(len(structures) / 2))):
        start = index * window
        members = structures[start : min(start + window + 1, len(structures))]
        if len(members) < 2:
            continue
        groups.append(
            SimilarityGroup(
                group_id=GROUP_LABELS[index],
                structure_ids=[structure.id for structure in members],
                similarity_score=round(0.85 - 0.05 * index, 2),
                common_features=["similar melodic contour", "parallel rhythmic pattern"],
                synthetic=True,
            )
        )
    return groups


def analyze_similarity(
    structures: Sequence[Structure],
    relationships: Optional[Sequence[Relationship]] = None,
) -> List[SimilarityGroup]:
    if len(structures) < MIN_GROUPING_STRUCTURES:
        return []
    if relationships is None:
        logger.debug("No relationship data; grouping {} structures by position", len(structures))
        return group_by_position(structures)
    groups = group_by_relationships(structures, relationships)
    logger.debug("Found {} similarity groups", len(groups))
    return groups


def identify_form(
    structures: Sequence[Structure],
    relationships: Optional[Sequence[Relationship]] = None,
) -> str:
    """First matching rule wins; falls back to a structure-count heuristic."""
    count = len(structures)
    if relationships:
        repeats = sum(1 for rel in relationships if rel.type == RelationshipType.REPEAT)
        contrasts = sum(1 for rel in relationships if rel.type == RelationshipType.CONTRAST)

        if repeats >= 2 and count >= 3:
            first_id, last_id = structures[0].id, structures[-1].id
            if any(
                rel.type == RelationshipType.REPEAT and rel.connects(first_id, last_id)
                for rel in relationships
            ):
                return TERNARY
        if repeats >= 3 and count >= 5:
            return RONDO
        if count <= 4 and contrasts >= 1:
            return BINARY
        if count >= 8 and repeats >= 2 and contrasts >= 2:
            return SONATA

    if count <= 2:
        return BINARY
    if count <= 4:
        return TERNARY
    if count <= 6:
        return RONDO_BY_COUNT
    return THROUGH_COMPOSED
