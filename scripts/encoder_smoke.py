#!/usr/bin/env python3
"""
Quick smoke test for the sentence-encoder backend.

Loads the configured encoder, embeds a structure description and prints
the closest theory rules, so contributors can verify whether real
inference ran or the hash fallback was used.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib.util
import json
import sys
import time
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a standalone encoder smoke test.")
    parser.add_argument(
        "--query",
        default="Musical phrase from measure 1 to 4, slow tempo, descending melodic contour",
        help="Structure description to embed.",
    )
    parser.add_argument(
        "--model-id",
        default=None,
        help="Encoder checkpoint override (defaults to worker settings).",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=5,
        help="Number of theory rules to print.",
    )
    return parser.parse_args()


def ensure_inference_dependencies() -> None:
    missing: list[str] = []
    for module_name in ("torch", "transformers"):
        if importlib.util.find_spec(module_name) is None:
            missing.append(f"{module_name} (module not found)")

    if missing:
        message = "\n".join(
            [
                "Missing inference dependencies:",
                *[f"  - {item}" for item in missing],
                "Install them with `pip install -e .` before running the smoke test.",
            ]
        )
        print(message, file=sys.stderr)
        sys.exit(2)


async def run_smoke(args: argparse.Namespace) -> None:
    from scorelens.app.settings import Settings
    from scorelens.services.embeddings import TransformerEmbeddingProvider
    from scorelens.services.knowledge import KnowledgeBase

    ensure_inference_dependencies()

    settings = Settings(embedding_enabled=True)
    provider = TransformerEmbeddingProvider(settings, model_id=args.model_id)

    start = time.perf_counter()
    status = await provider.warmup()
    warmup_elapsed = time.perf_counter() - start

    knowledge_base = KnowledgeBase(dimensions=settings.embedding_dimensions)
    refreshed = await knowledge_base.refresh_embeddings(provider)

    start = time.perf_counter()
    result = await provider.embed(args.query)
    embed_elapsed = time.perf_counter() - start
    matches = knowledge_base.search_rules(result.vector, args.top_k)

    payload = {
        "status": status.as_dict(),
        "refreshed_rules": refreshed,
        "matches": [match.as_dict() for match in matches],
        "warmup_seconds": round(warmup_elapsed, 3),
        "embed_seconds": round(embed_elapsed, 3),
    }
    print(json.dumps(payload, indent=2))

    if result.fallback_used:
        print(f"Hash fallback used (reason={result.reason})", file=sys.stderr)
        print(
            "The smoke test requires real inference. Ensure torch/transformers are installed and the checkpoint is reachable.",
            file=sys.stderr,
        )
        sys.exit(3)
    else:
        print("Encoder produced real embeddings.", file=sys.stderr)


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(run_smoke(args))
    except KeyboardInterrupt:  # pragma: no cover - operator friendly exit
        print("Cancelled smoke test.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
