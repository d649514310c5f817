from __future__ import annotations

from typing import cast

from fastapi import APIRouter, HTTPException, Request

from ..services.orchestrator import AnalysisOrchestrator
from .models import (
    AnalysisResult,
    EmotionFeatures,
    MusicFeatures,
    PreferenceStatistics,
    RecognizeRequest,
    RecommendationRequest,
    Score,
    SessionCreateRequest,
    SessionRecommendationRequest,
    SessionSummary,
    SimilarityGroup,
    StructureEmotion,
    StructuresRequest,
    UserAction,
    VisualScheme,
)
from .settings import Settings
from .sessions import SessionManager, UnknownSessionError

router = APIRouter()


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return cast(AnalysisOrchestrator, request.app.state.orchestrator)


def get_session_manager(request: Request) -> SessionManager:
    return cast(SessionManager, request.app.state.session_manager)


def _not_found(exc: UnknownSessionError) -> HTTPException:
    return HTTPException(status_code=404, detail=f"session {exc.session_id} not found")


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    settings = cast(Settings, request.app.state.settings)
    orchestrator = get_orchestrator(request)
    backend_status = {
        name: status.as_dict() for name, status in orchestrator.backend_status().items()
    }
    warmup_complete = bool(backend_status) and all(
        value.get("ready") for value in backend_status.values()
    )
    session_summaries = await get_session_manager(request).all_summaries()
    return {
        "status": "ok",
        "embedding_model_id": settings.embedding_model_id,
        "embedding_enabled": settings.embedding_enabled,
        "knowledge_rules": orchestrator.knowledge_base.rule_count,
        "backend_status": backend_status,
        "warmup_complete": warmup_complete,
        "session_count": len(session_summaries),
    }


@router.post("/analyze", response_model=AnalysisResult)
async def analyze(score: Score, request: Request) -> AnalysisResult:
    return await get_orchestrator(request).analyze(score)


@router.post("/emotion/infer", response_model=EmotionFeatures)
async def infer_emotion(features: MusicFeatures, request: Request) -> EmotionFeatures:
    return get_orchestrator(request).infer_emotion(features)


@router.post("/emotion/recognize", response_model=list[StructureEmotion])
async def recognize_emotions(payload: RecognizeRequest, request: Request) -> list[StructureEmotion]:
    return get_orchestrator(request).recognize_emotions(payload.structures, payload.audio_data)


@router.post("/form")
async def identify_form(payload: StructuresRequest, request: Request) -> dict[str, str]:
    form = get_orchestrator(request).identify_form(payload.structures, payload.relationships)
    return {"form": form}


@router.post("/similarity", response_model=list[SimilarityGroup])
async def analyze_similarity(payload: StructuresRequest, request: Request) -> list[SimilarityGroup]:
    return get_orchestrator(request).analyze_similarity(payload.structures, payload.relationships)


@router.post("/recommendations", response_model=list[VisualScheme])
async def recommend(payload: RecommendationRequest, request: Request) -> list[VisualScheme]:
    return get_orchestrator(request).recommend_visuals(
        payload.emotion,
        payload.level,
        preferences=payload.preferences,
        structure_id=payload.structure_id,
        relationships=payload.relationships,
    )


@router.post("/sessions", response_model=SessionSummary)
async def create_session(payload: SessionCreateRequest, request: Request) -> SessionSummary:
    return await get_session_manager(request).create_session(payload)


@router.get("/sessions/{session_id}", response_model=SessionSummary)
async def get_session(session_id: str, request: Request) -> SessionSummary:
    summary = await get_session_manager(request).get_summary(session_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"session {session_id} not found")
    return summary


@router.post("/sessions/{session_id}/analyze", response_model=AnalysisResult)
async def analyze_in_session(session_id: str, score: Score, request: Request) -> AnalysisResult:
    manager = get_session_manager(request)
    if not await manager.session_exists(session_id):
        raise HTTPException(status_code=404, detail=f"session {session_id} not found")
    result = await get_orchestrator(request).analyze(score)
    try:
        await manager.store_analysis(session_id, result)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc
    return result


@router.post("/sessions/{session_id}/recommendations", response_model=list[VisualScheme])
async def recommend_in_session(
    session_id: str,
    payload: SessionRecommendationRequest,
    request: Request,
) -> list[VisualScheme]:
    try:
        context = await get_session_manager(request).get_context(session_id)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc
    relationships = context.last_analysis.relationships if context.last_analysis else []
    return get_orchestrator(request).recommend_visuals(
        payload.emotion,
        payload.level,
        preferences=context.preferences(),
        structure_id=payload.structure_id,
        relationships=relationships,
    )


@router.post("/sessions/{session_id}/actions", response_model=PreferenceStatistics)
async def record_action(session_id: str, action: UserAction, request: Request) -> PreferenceStatistics:
    try:
        return await get_session_manager(request).record_user_action(session_id, action)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc


@router.get("/sessions/{session_id}/preferences")
async def get_preferences(session_id: str, request: Request) -> dict[str, object]:
    try:
        context = await get_session_manager(request).get_context(session_id)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc
    return {
        "weights": context.preferences(),
        "statistics": context.get_preference_statistics().model_dump(),
    }


@router.delete("/sessions/{session_id}/preferences", response_model=PreferenceStatistics)
async def clear_preferences(session_id: str, request: Request) -> PreferenceStatistics:
    manager = get_session_manager(request)
    try:
        await manager.clear_preferences(session_id)
        return await manager.get_preference_statistics(session_id)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc


@router.post("/sessions/{session_id}/export", response_model=SessionSummary)
async def export_session(session_id: str, request: Request) -> SessionSummary:
    try:
        return await get_session_manager(request).export(session_id)
    except UnknownSessionError as exc:
        raise _not_found(exc) from exc
