from __future__ import annotations

import numpy as np
import pytest

from scorelens.app.models import EmotionFeatures, Score, StructureLevel
from scorelens.app.settings import Settings
from scorelens.services.grouping import TERNARY
from scorelens.services.orchestrator import AnalysisOrchestrator
from scorelens.services.types import BackendStatus, EmbeddingResult


class StubEncoder:
    name = "stub"

    async def warmup(self) -> BackendStatus:
        return BackendStatus(name=self.name, ready=True, device="cpu", model_id=None, error=None)

    async def embed(self, text: str) -> EmbeddingResult:
        vector = np.ones(384, dtype=np.float32) / np.sqrt(384)
        return EmbeddingResult(vector=vector, backend=self.name, fallback_used=False)


@pytest.mark.asyncio
async def test_analyze_full_pipeline(aaba_score: Score, hash_settings: Settings) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings)
    result = await orchestrator.analyze(aaba_score)

    assert [structure.id for structure in result.structures] == ["S1", "S2", "S3", "S4"]
    assert result.form == TERNARY
    assert [group.structure_ids for group in result.groups] == [["S1", "S2"], ["S4"]]
    assert [emotion.structure_id for emotion in result.emotions] == ["S1", "S2", "S3", "S4"]
    assert all(structure.emotion is not None for structure in result.structures)
    assert all(0.5 <= structure.confidence <= 1.0 for structure in result.structures)
    assert [period.id for period in result.periods] == ["P1", "P2"]


@pytest.mark.asyncio
async def test_analyze_empty_score(hash_settings: Settings) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings)
    result = await orchestrator.analyze(Score(measures=[]))
    assert result.structures == []
    assert result.groups == []
    assert result.form is None


@pytest.mark.asyncio
async def test_warmup_reports_hash_backend(hash_settings: Settings) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings)
    assert orchestrator.backend_status() == {}

    statuses = await orchestrator.warmup()
    assert list(statuses) == ["hash"]
    assert statuses["hash"].ready is True
    assert statuses["hash"].details["refreshed_rules"] == 0
    assert orchestrator.backend_status()["hash"].ready is True


@pytest.mark.asyncio
async def test_warmup_refreshes_rules_with_ready_encoder(hash_settings: Settings) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings, embeddings=StubEncoder())
    statuses = await orchestrator.warmup()
    assert statuses["stub"].details["refreshed_rules"] == orchestrator.knowledge_base.rule_count

    rule = orchestrator.knowledge_base.all_rules()[0]
    assert np.allclose(rule.embedding, np.ones(384) / np.sqrt(384))


def test_recommend_visuals_passthrough(hash_settings: Settings) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings)
    schemes = orchestrator.recommend_visuals(EmotionFeatures(), StructureLevel.MOTIVE)
    assert len(schemes) == 5
    assert all(len(scheme.elements) == 1 for scheme in schemes)
    assert schemes[0].elements[0].animation.duration == hash_settings.default_animation_ms


@pytest.mark.asyncio
async def test_analyze_without_warmup_embeds_rules_with_same_encoder(
    aaba_score: Score, hash_settings: Settings
) -> None:
    orchestrator = AnalysisOrchestrator(hash_settings, embeddings=StubEncoder())
    result = await orchestrator.analyze(aaba_score)

    assert orchestrator.backend_status()["stub"].ready is True
    rule = orchestrator.knowledge_base.all_rules()[0]
    assert np.allclose(rule.embedding, np.ones(384) / np.sqrt(384))
    assert all(structure.confidence == pytest.approx(1.0) for structure in result.structures)

    refreshed_at = orchestrator.backend_status()["stub"].updated_at
    await orchestrator.analyze(aaba_score)
    assert orchestrator.backend_status()["stub"].updated_at == refreshed_at
