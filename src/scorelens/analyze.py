"""
CLI entry point to run a one-off score analysis through the orchestrator.

Example:
    python -m scorelens.analyze --score minuet.json --no-model
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional

from .app.models import Score
from .app.settings import Settings
from .services.emotion import emotion_features_for
from .services.orchestrator import AnalysisOrchestrator


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyse a parsed score with ScoreLens.")
    parser.add_argument(
        "--score",
        type=Path,
        required=True,
        help="Path to a JSON score ({'measures': [{'notes': [...]}, ...]}).",
    )
    parser.add_argument(
        "--no-model",
        action="store_true",
        help="Skip the sentence encoder and use the deterministic hash embedding.",
    )
    parser.add_argument(
        "--model-id",
        default=None,
        help="Optional encoder checkpoint override (defaults to worker settings).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full analysis as JSON instead of a summary.",
    )
    return parser.parse_args()


async def _run(
    score_path: Path,
    *,
    use_model: bool,
    model_id: Optional[str],
    as_json: bool,
) -> None:
    settings_kwargs: dict[str, object] = {"embedding_enabled": use_model}
    if model_id is not None:
        settings_kwargs["embedding_model_id"] = model_id
    settings = Settings(**settings_kwargs)

    score = Score.model_validate(json.loads(score_path.read_text(encoding="utf-8")))
    orchestrator = AnalysisOrchestrator(settings)
    statuses = await orchestrator.warmup()
    result = await orchestrator.analyze(score)

    if as_json:
        print(result.model_dump_json(indent=2))
        return

    for name, status in statuses.items():
        print(f"backend       : {name} (ready={status.ready})")
        if status.error:
            print(f"reason        : {status.error}")
    print(f"measures      : {score.total_measures}")
    print(f"structures    : {len(result.structures)}")
    print(f"relationships : {len(result.relationships)}")
    print(f"form          : {result.form or 'n/a'}")
    for group in result.groups:
        print(f"group {group.group_id}       : {', '.join(group.structure_ids)}")
    emotions = {emotion.structure_id: emotion for emotion in result.emotions}
    for structure in result.structures:
        emotion = emotions.get(structure.id)
        label = emotion.primary.value if emotion is not None else "-"
        print(
            f"{structure.id:<6} m{structure.start_measure}-{structure.end_measure} "
            f"{structure.level.value:<10} confidence={structure.confidence:.2f} emotion={label}"
        )
    if result.structures and result.structures[0].emotion is not None:
        first = result.structures[0]
        schemes = orchestrator.recommend_visuals(
            emotion_features_for(first.emotion),
            first.level,
            structure_id=first.id,
            relationships=result.relationships,
        )
        print(f"top scheme    : {schemes[0].id} ({schemes[0].layout})")


def main() -> None:
    args = _parse_args()
    asyncio.run(
        _run(
            args.score,
            use_model=not args.no_model,
            model_id=args.model_id,
            as_json=args.json,
        )
    )


if __name__ == "__main__":
    main()
