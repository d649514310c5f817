"""Music-theory knowledge base with embedding-based retrieval."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from loguru import logger

from ..app.models import RuleCategory
from ..app.settings import EMBEDDING_DIMENSIONS
from .embeddings import EmbeddingProvider, cosine_similarity, fallback_embedding

_CATALOG_PATH = Path(__file__).resolve().parents[1] / "data" / "theory_rules.json"

_CATEGORY_LOOKUP = {category.value: category for category in RuleCategory}


@dataclass
class TheoryRule:
    id: str
    name: str
    description: str
    category: RuleCategory
    applicable_periods: frozenset[str]
    confidence: float
    features: Dict[str, Any] = field(default_factory=dict)
    embedding: np.ndarray = field(
        default_factory=lambda: np.zeros(EMBEDDING_DIMENSIONS, dtype=np.float32),
        repr=False,
    )


@dataclass(frozen=True)
class RuleMatch:
    """A catalog rule paired with its similarity to one query."""

    rule: TheoryRule
    similarity: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.rule.id,
            "name": self.rule.name,
            "category": self.rule.category.value,
            "similarity": self.similarity,
        }


def _build_rule(entry: dict) -> TheoryRule:
    category_key = str(entry["category"]).lower()
    try:
        category = _CATEGORY_LOOKUP[category_key]
    except KeyError as exc:  # pragma: no cover - configuration error
        raise ValueError(f"unknown rule category '{entry['category']}' in catalog") from exc
    return TheoryRule(
        id=entry["id"],
        name=entry["name"],
        description=entry["description"],
        category=category,
        applicable_periods=frozenset(entry.get("applicable_periods", [])),
        confidence=float(entry.get("confidence", 0.85)),
        features=dict(entry.get("features", {})),
    )


def load_catalog(path: Path = _CATALOG_PATH) -> List[TheoryRule]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    rules = [_build_rule(entry) for entry in payload["rules"]]
    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:  # pragma: no cover - configuration error
            raise ValueError(f"duplicate rule id '{rule.id}' in catalog")
        seen.add(rule.id)
    return rules


class KnowledgeBase:
    """Static catalog of theory rules, searchable by cosine similarity."""

    def __init__(
        self,
        catalog_path: Path = _CATALOG_PATH,
        *,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> None:
        self._catalog_path = catalog_path
        self._dimensions = dimensions
        self._rules: List[TheoryRule] = []
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def initialize(self) -> bool:
        """Load the catalog and pre-compute fallback embeddings.

        Returns ``False`` when the knowledge base was already initialized.
        """
        if self._initialized:
            return False
        rules = load_catalog(self._catalog_path)
        for rule in rules:
            rule.embedding = fallback_embedding(rule.description, self._dimensions)
        self._rules = rules
        self._initialized = True
        logger.info("Knowledge base loaded {} theory rules", len(rules))
        return True

    def search_rules(self, query_vector: np.ndarray, k: int = 5) -> List[RuleMatch]:
        """Top ``k`` rules by descending cosine similarity, ties in catalog order."""
        self.initialize()
        if k <= 0:
            return []
        scores = [cosine_similarity(query_vector, rule.embedding) for rule in self._rules]
        ranked = sorted(range(len(self._rules)), key=lambda index: -scores[index])
        return [RuleMatch(rule=self._rules[index], similarity=scores[index]) for index in ranked[:k]]

    def search_by_category(self, category: RuleCategory | str) -> List[TheoryRule]:
        self.initialize()
        target = _CATEGORY_LOOKUP.get(str(getattr(category, "value", category)).lower())
        if target is None:
            logger.warning("Unknown rule category {}", category)
            return []
        return [rule for rule in self._rules if rule.category == target]

    def get_rule(self, rule_id: str) -> Optional[TheoryRule]:
        self.initialize()
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def all_rules(self) -> List[TheoryRule]:
        self.initialize()
        return list(self._rules)

    def update_rule_embedding(self, rule_id: str, vector: np.ndarray) -> bool:
        rule = self.get_rule(rule_id)
        if rule is None:
            logger.warning("Ignoring embedding update for unknown rule {}", rule_id)
            return False
        rule.embedding = np.asarray(vector, dtype=np.float32)
        return True

    async def refresh_embeddings(self, provider: EmbeddingProvider) -> int:
        """Re-embed rule descriptions with ``provider``; returns the number refreshed.

        Rules whose embedding came back from the fallback path keep their
        existing vector.
        """
        self.initialize()
        refreshed = 0
        for rule in self._rules:
            result = await provider.embed(rule.description)
            if result.fallback_used:
                continue
            rule.embedding = result.vector
            refreshed += 1
        if refreshed:
            logger.info("Refreshed {} rule embeddings via {}", refreshed, provider.name)
        return refreshed
