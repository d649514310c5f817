"""Shared service data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class EmbeddingResult:
    vector: np.ndarray
    backend: str
    fallback_used: bool
    reason: Optional[str] = None

    @property
    def dimensions(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class StructureProfile:
    """Symbolic summary of a structure used for relationship detection."""

    structure_id: str
    pitches: tuple[int, ...]
    durations: tuple[float, ...]
    contour: str
    tempo: str
    repetitive: bool

    @property
    def intervals(self) -> tuple[int, ...]:
        return tuple(b - a for a, b in zip(self.pitches, self.pitches[1:]))


@dataclass(frozen=True)
class StructureFeatures:
    energy: float
    brightness: float
    tension: float


@dataclass
class BackendStatus:
    name: str
    ready: bool
    device: Optional[str]
    model_id: Optional[str]
    error: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "ready": self.ready,
            "updated_at": self.updated_at.isoformat(),
        }
        if self.device is not None:
            payload["device"] = self.device
        if self.model_id is not None:
            payload["model_id"] = self.model_id
        if self.error is not None:
            payload["error"] = self.error
        if self.details:
            payload["details"] = self.details
        return payload
