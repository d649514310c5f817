from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

EMBEDDING_DIMENSIONS = 384


def _default_model_cache_dir() -> Path:
    return Path.home() / ".cache" / "scorelens" / "models"


class Settings(BaseSettings):
    """Runtime configuration for the ScoreLens analysis worker."""

    model_config = SettingsConfigDict(
        env_prefix="SCORELENS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    embedding_enabled: bool = Field(
        default=True,
        description="Load the pre-trained sentence encoder (disable to force the hash fallback).",
    )
    embedding_model_id: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        max_length=128,
        description="Hugging Face checkpoint used for text embeddings.",
    )
    embedding_dimensions: int = Field(
        default=EMBEDDING_DIMENSIONS,
        ge=EMBEDDING_DIMENSIONS,
        le=EMBEDDING_DIMENSIONS,
        description="Embedding width shared by the encoder and the fallback hash.",
    )
    model_cache_dir: Path = Field(default_factory=_default_model_cache_dir)
    inference_device: Optional[str] = Field(
        default=None,
        description="Override inference device selection (cpu, mps, cuda).",
    )
    knowledge_top_k: int = Field(
        default=5,
        ge=1,
        le=30,
        description="Number of theory rules retrieved per structure description.",
    )
    relationship_window: int = Field(
        default=8,
        ge=1,
        le=64,
        description="How many following structures each structure is compared against.",
    )
    min_phrase_measures: int = Field(default=2, ge=1, le=16)
    max_phrase_measures: int = Field(default=4, ge=1, le=32)
    default_animation_ms: int = Field(
        default=1000,
        ge=200,
        le=5000,
        description="Base animation duration for recommended visual elements.",
    )

    @model_validator(mode="after")
    def _align_phrase_bounds(self) -> "Settings":
        if self.min_phrase_measures > self.max_phrase_measures:
            self.min_phrase_measures = self.max_phrase_measures
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
