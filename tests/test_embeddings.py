from pathlib import Path

import numpy as np
import pytest

from scorelens.app.settings import Settings
from scorelens.services.embeddings import (
    HashEmbeddingProvider,
    TransformerEmbeddingProvider,
    build_embedding_provider,
    cosine_similarity,
    fallback_embedding,
)


def test_fallback_embedding_is_deterministic_and_unit_norm() -> None:
    first = fallback_embedding("cadence")
    second = fallback_embedding("cadence")
    assert first.shape == (384,)
    assert np.array_equal(first, second)
    assert abs(float(np.linalg.norm(first)) - 1.0) < 1e-6


def test_fallback_embedding_places_characters_by_word_index() -> None:
    vector = fallback_embedding("a")
    # 'a' is code 97 at word 0, position 0 -> only dimension 97 is set.
    assert np.argmax(vector) == 97
    assert np.count_nonzero(vector) == 1

    shifted = fallback_embedding("x a")
    assert shifted[(97 * 2) % 384] > 0


def test_fallback_embedding_returns_zero_vector_for_blank_text() -> None:
    assert not fallback_embedding("").any()
    assert not fallback_embedding("   ").any()


def test_cosine_similarity_handles_degenerate_vectors() -> None:
    zero = np.zeros(384, dtype=np.float32)
    unit = fallback_embedding("melody")
    assert cosine_similarity(zero, unit) == 0.0
    assert cosine_similarity(unit, np.ones(10)) == 0.0
    assert cosine_similarity(unit, unit) == pytest.approx(1.0, abs=1e-6)


@pytest.mark.asyncio
async def test_hash_provider_tags_results_as_fallback() -> None:
    provider = HashEmbeddingProvider()
    result = await provider.embed("authentic cadence")
    assert result.fallback_used is True
    assert result.backend == "hash"
    assert np.array_equal(result.vector, fallback_embedding("authentic cadence"))

    status = await provider.warmup()
    assert status.ready is True


@pytest.mark.asyncio
async def test_transformer_provider_falls_back_when_model_missing(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    provider = TransformerEmbeddingProvider()

    async def _fake_ensure():  # type: ignore[override]
        return None, "forced_placeholder"

    monkeypatch.setattr(provider, "_ensure_model", _fake_ensure)

    result = await provider.embed("slow tempo, descending contour")
    assert result.fallback_used is True
    assert result.reason == "forced_placeholder"
    assert np.array_equal(result.vector, fallback_embedding("slow tempo, descending contour"))

    status = await provider.warmup()
    assert status.name == "transformers"
    assert status.ready is False
    assert status.error == "forced_placeholder"


@pytest.mark.asyncio
async def test_transformer_provider_skips_model_for_empty_text() -> None:
    provider = TransformerEmbeddingProvider()
    result = await provider.embed("  ")
    assert result.fallback_used is True
    assert result.reason == "empty_text"
    assert not result.vector.any()
    assert provider.ready is False


@pytest.mark.asyncio
async def test_transformer_provider_survives_inference_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    provider = TransformerEmbeddingProvider()

    async def _fake_ensure():  # type: ignore[override]
        return object(), None

    def _boom(handle, text):  # type: ignore[no-untyped-def]
        raise RuntimeError("encoder exploded")

    monkeypatch.setattr(provider, "_ensure_model", _fake_ensure)
    monkeypatch.setattr(provider, "_encode", _boom)

    result = await provider.embed("hemiola before the cadence")
    assert result.fallback_used is True
    assert result.reason == "inference_error:RuntimeError"


def test_build_embedding_provider_honours_settings(tmp_path: Path) -> None:
    disabled = Settings(embedding_enabled=False, model_cache_dir=tmp_path)
    assert isinstance(build_embedding_provider(disabled), HashEmbeddingProvider)

    enabled = Settings(embedding_enabled=True, model_cache_dir=tmp_path, inference_device="cpu")
    provider = build_embedding_provider(enabled)
    assert isinstance(provider, TransformerEmbeddingProvider)
    assert provider.model_id == enabled.embedding_model_id
    assert provider._device == "cpu"  # type: ignore[attr-defined]
