"""High-level analysis orchestrator coordinating the analysis services."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..app.models import (
    AnalysisResult,
    AudioFeatureOverride,
    EmotionFeatures,
    MusicFeatures,
    Relationship,
    Score,
    SimilarityGroup,
    Structure,
    StructureEmotion,
    StructureLevel,
    VisualScheme,
)
from ..app.settings import Settings
from .embeddings import EmbeddingProvider, build_embedding_provider
from .emotion import EmotionAnalyzer, infer_emotion, recognize_emotions
from .grouping import analyze_similarity, identify_form
from .knowledge import KnowledgeBase
from .recommender import VisualRecommender
from .segmentation import StructureAnalyzer
from .types import BackendStatus


class AnalysisOrchestrator:
    """Runs segmentation, knowledge retrieval, grouping and recommendation."""

    def __init__(
        self,
        settings: Settings,
        *,
        embeddings: Optional[EmbeddingProvider] = None,
        knowledge_base: Optional[KnowledgeBase] = None,
    ) -> None:
        self._settings = settings
        self._embeddings = embeddings or build_embedding_provider(settings)
        self._knowledge_base = knowledge_base or KnowledgeBase(
            dimensions=settings.embedding_dimensions
        )
        self._knowledge_base.initialize()
        self._analyzer = StructureAnalyzer(settings)
        self._emotions = EmotionAnalyzer(
            self._knowledge_base,
            self._embeddings,
            top_k=settings.knowledge_top_k,
        )
        self._recommender = VisualRecommender(settings.default_animation_ms)
        self._backend_status: Dict[str, BackendStatus] = {}
        self._warmup_lock = asyncio.Lock()

    @property
    def knowledge_base(self) -> KnowledgeBase:
        return self._knowledge_base

    async def warmup(self) -> Dict[str, BackendStatus]:
        """Load the encoder and re-embed the catalog with it when it is ready."""
        async with self._warmup_lock:
            return await self._warmup_locked()

    async def _ensure_warm(self) -> None:
        # Rule vectors must come from the same encoder as the query vectors.
        async with self._warmup_lock:
            if self._embeddings.name not in self._backend_status:
                await self._warmup_locked()

    async def _warmup_locked(self) -> Dict[str, BackendStatus]:
        status = await self._embeddings.warmup()
        if status.ready:
            refreshed = await self._knowledge_base.refresh_embeddings(self._embeddings)
            status.details["refreshed_rules"] = refreshed
        self._backend_status[self._embeddings.name] = status
        return {self._embeddings.name: status}

    def backend_status(self) -> Dict[str, BackendStatus]:
        return dict(self._backend_status)

    async def analyze(self, score: Score) -> AnalysisResult:
        result = self._analyzer.analyze(score)
        if not result.structures:
            return result
        await self._ensure_warm()
        await self._emotions.enhance_with_knowledge(result.structures)
        result.emotions = recognize_emotions(result.structures)
        result.groups = analyze_similarity(result.structures, result.relationships)
        result.form = identify_form(result.structures, result.relationships)
        logger.info(
            "Analysed score '{}': {} structures, {} relationships, form {}",
            score.title or "untitled",
            len(result.structures),
            len(result.relationships),
            result.form,
        )
        return result

    def infer_emotion(self, features: MusicFeatures) -> EmotionFeatures:
        return infer_emotion(features)

    def recognize_emotions(
        self,
        structures: Sequence[Structure],
        audio_data: Optional[Mapping[str, AudioFeatureOverride]] = None,
    ) -> List[StructureEmotion]:
        return recognize_emotions(structures, audio_data)

    def recommend_visuals(
        self,
        emotion: EmotionFeatures,
        level: StructureLevel | str,
        preferences: Optional[Mapping[str, float]] = None,
        structure_id: Optional[str] = None,
        relationships: Sequence[Relationship] = (),
    ) -> List[VisualScheme]:
        return self._recommender.recommend(
            emotion,
            level,
            preferences=preferences,
            structure_id=structure_id,
            relationships=relationships,
        )

    def identify_form(
        self,
        structures: Sequence[Structure],
        relationships: Optional[Sequence[Relationship]] = None,
    ) -> str:
        return identify_form(structures, relationships)

    def analyze_similarity(
        self,
        structures: Sequence[Structure],
        relationships: Optional[Sequence[Relationship]] = None,
    ) -> List[SimilarityGroup]:
        return analyze_similarity(structures, relationships)
