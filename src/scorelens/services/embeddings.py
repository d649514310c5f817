"""Text embedding backends: a frozen sentence encoder with a deterministic hash fallback."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple

import numpy as np
from loguru import logger

from ..app.settings import EMBEDDING_DIMENSIONS, Settings
from .types import BackendStatus, EmbeddingResult

try:  # pragma: no cover - deferred dependency import
    import torch
except Exception as exc:  # noqa: BLE001
    torch = None  # type: ignore[assignment]
    TORCH_IMPORT_ERROR = exc
else:  # pragma: no cover
    TORCH_IMPORT_ERROR = None

try:  # pragma: no cover
    from transformers import AutoModel, AutoTokenizer
except Exception as exc:  # noqa: BLE001
    AutoModel = None  # type: ignore[assignment]
    AutoTokenizer = None  # type: ignore[assignment]
    TRANSFORMERS_IMPORT_ERROR = exc
else:  # pragma: no cover
    TRANSFORMERS_IMPORT_ERROR = None


_WORD_SPLIT = re.compile(r"\s+")


def _l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        return vector / norm
    return vector


def fallback_embedding(text: str, dimensions: int = EMBEDDING_DIMENSIONS) -> np.ndarray:
    """Bag-of-characters hash embedding.

    Character ``j`` (code ``c``) of word ``i`` adds ``1/(j+1)`` to dimension
    ``(c * (i+1)) % dimensions``. The result is L2-normalized; text without any
    characters yields the zero vector.
    """
    vector = np.zeros(dimensions, dtype=np.float64)
    for word_index, word in enumerate(_WORD_SPLIT.split(text.lower())):
        for char_index, char in enumerate(word):
            vector[(ord(char) * (word_index + 1)) % dimensions] += 1.0 / (char_index + 1)
    return _l2_normalize(vector).astype(np.float32)


def cosine_similarity(first: np.ndarray, second: np.ndarray) -> float:
    """Cosine similarity; 0.0 for mismatched shapes or zero-norm input."""
    a = np.asarray(first, dtype=np.float64).ravel()
    b = np.asarray(second, dtype=np.float64).ravel()
    if a.shape != b.shape or a.size == 0:
        return 0.0
    magnitude = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if magnitude <= 0.0:
        return 0.0
    return float(np.dot(a, b) / magnitude)


class EmbeddingProvider(Protocol):
    name: str

    async def warmup(self) -> BackendStatus: ...

    async def embed(self, text: str) -> EmbeddingResult: ...


class HashEmbeddingProvider:
    """Pure fallback provider used when the encoder is disabled."""

    name = "hash"

    def __init__(
        self,
        dimensions: int = EMBEDDING_DIMENSIONS,
        *,
        reason: str = "embedding_disabled",
    ) -> None:
        self._dimensions = dimensions
        self._reason = reason

    async def warmup(self) -> BackendStatus:
        return BackendStatus(
            name=self.name,
            ready=True,
            device=None,
            model_id=None,
            error=None,
            details={"reason": self._reason},
        )

    async def embed(self, text: str) -> EmbeddingResult:
        return EmbeddingResult(
            vector=fallback_embedding(text, self._dimensions),
            backend=self.name,
            fallback_used=True,
            reason=self._reason,
        )


@dataclass
class EncoderHandle:
    model: Any
    tokenizer: Any
    max_length: int


class TransformerEmbeddingProvider:
    """Mean-pooled sentence embeddings from a Hugging Face encoder checkpoint."""

    name = "transformers"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        model_id: Optional[str] = None,
    ) -> None:
        self._settings = settings
        if model_id is not None:
            self._model_id = model_id
        elif settings is not None:
            self._model_id = settings.embedding_model_id
        else:
            self._model_id = "sentence-transformers/all-MiniLM-L6-v2"
        self._dimensions = settings.embedding_dimensions if settings is not None else EMBEDDING_DIMENSIONS
        self._cache_dir = settings.model_cache_dir if settings is not None else None

        self._handle: Optional[EncoderHandle] = None
        self._load_attempted = False
        self._load_error: Optional[str] = None
        self._lock = asyncio.Lock()
        self._device = self._select_device()

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def ready(self) -> bool:
        return self._handle is not None

    async def warmup(self) -> BackendStatus:
        handle, reason = await self._ensure_model()
        return BackendStatus(
            name=self.name,
            ready=handle is not None,
            device=self._device if handle is not None else None,
            model_id=self._model_id,
            error=reason,
            details={"dimensions": self._dimensions},
        )

    async def embed(self, text: str) -> EmbeddingResult:
        if not text.strip():
            return self._fallback(text, "empty_text")

        handle, reason = await self._ensure_model()
        if handle is None:
            return self._fallback(text, reason or "encoder_unavailable")

        try:
            vector = await asyncio.to_thread(self._encode, handle, text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Embedding inference failed, using hash fallback: {}", exc)
            return self._fallback(text, f"inference_error:{exc.__class__.__name__}")

        if vector.shape != (self._dimensions,):
            logger.warning(
                "Encoder {} produced {} dimensions, expected {}",
                self._model_id,
                vector.shape,
                self._dimensions,
            )
            return self._fallback(text, "dimension_mismatch")
        return EmbeddingResult(vector=vector, backend=self.name, fallback_used=False)

    def _fallback(self, text: str, reason: str) -> EmbeddingResult:
        return EmbeddingResult(
            vector=fallback_embedding(text, self._dimensions),
            backend=self.name,
            fallback_used=True,
            reason=reason,
        )

    async def _ensure_model(self) -> Tuple[Optional[EncoderHandle], Optional[str]]:
        async with self._lock:
            if self._load_attempted:
                return self._handle, self._load_error
            self._load_attempted = True

            if torch is None or AutoModel is None or AutoTokenizer is None:
                self._load_error = self._missing_dependency_reason()
                logger.warning("Sentence encoder unavailable: {}", self._load_error)
                return None, self._load_error

            try:
                self._handle = await asyncio.to_thread(self._load_handle)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to load sentence encoder {}", self._model_id)
                self._load_error = f"load_error:{exc.__class__.__name__}"
                return None, self._load_error

            logger.info("Sentence encoder {} ready on {}", self._model_id, self._device)
            return self._handle, None

    def _load_handle(self) -> EncoderHandle:
        cache_dir = str(self._cache_dir) if self._cache_dir is not None else None
        tokenizer = AutoTokenizer.from_pretrained(self._model_id, cache_dir=cache_dir)
        model = AutoModel.from_pretrained(self._model_id, cache_dir=cache_dir)
        model = model.to(self._device)
        model.eval()
        max_length = int(getattr(tokenizer, "model_max_length", 512) or 512)
        return EncoderHandle(model=model, tokenizer=tokenizer, max_length=min(max_length, 512))

    def _encode(self, handle: EncoderHandle, text: str) -> np.ndarray:
        assert torch is not None
        inputs = handle.tokenizer(
            [text],
            padding=True,
            truncation=True,
            max_length=handle.max_length,
            return_tensors="pt",
        )
        inputs = {key: value.to(self._device) for key, value in inputs.items()}
        with torch.no_grad():
            output = handle.model(**inputs)
        token_embeddings = output[0]
        mask = inputs["attention_mask"].unsqueeze(-1).to(token_embeddings.dtype)
        summed = (token_embeddings * mask).sum(dim=1)
        counts = mask.sum(dim=1).clamp(min=1e-9)
        pooled = (summed / counts)[0].cpu().numpy().astype(np.float32)
        return _l2_normalize(pooled)

    def _select_device(self) -> str:
        override = self._settings.inference_device if self._settings is not None else None
        if torch is None:
            return "cpu"
        if override:
            if override == "cuda" and not torch.cuda.is_available():
                return "cpu"
            if override == "mps" and not (
                getattr(torch.backends, "mps", None) and torch.backends.mps.is_available()
            ):
                return "cpu"
            return override
        if torch.cuda.is_available():  # pragma: no cover
            return "cuda"
        if getattr(torch.backends, "mps", None) and torch.backends.mps.is_available():
            return "mps"
        return "cpu"

    def _missing_dependency_reason(self) -> str:
        if torch is None:
            detail = TORCH_IMPORT_ERROR or "torch_not_installed"
            return f"torch_unavailable:{detail}"
        if AutoModel is None or AutoTokenizer is None:
            detail = TRANSFORMERS_IMPORT_ERROR or "transformers_not_installed"
            return f"transformers_unavailable:{detail}"
        return "unknown"


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_enabled:
        return TransformerEmbeddingProvider(settings)
    return HashEmbeddingProvider(settings.embedding_dimensions)
