from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Dict, Optional
from uuid import uuid4

from loguru import logger

from ..services.preferences import PreferenceLearner
from .models import (
    AnalysisResult,
    PreferenceStatistics,
    SessionCreateRequest,
    SessionSummary,
    UserAction,
)


class UnknownSessionError(Exception):
    """Raised when a session lookup fails."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id


@dataclass
class SessionContext:
    """Preference state and latest analysis for one interactive session."""

    session_id: str
    created_at: datetime
    updated_at: datetime
    name: Optional[str] = None
    learner: PreferenceLearner = field(default_factory=PreferenceLearner)
    last_analysis: Optional[AnalysisResult] = None
    export_count: int = 0

    def touch(self) -> None:
        self.updated_at = datetime.now(tz=UTC)

    def preferences(self) -> Dict[str, float]:
        return self.learner.get_preferences()

    def record_user_action(self, action: UserAction) -> PreferenceStatistics:
        self.learner.record_action(action)
        self.touch()
        return self.learner.get_statistics()

    def clear_preferences(self) -> None:
        self.learner.clear_preferences()
        self.touch()

    def get_preference_statistics(self) -> PreferenceStatistics:
        return self.learner.get_statistics()

    def to_summary(self) -> SessionSummary:
        analysis = self.last_analysis
        return SessionSummary(
            session_id=self.session_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            name=self.name,
            preferences=self.preferences(),
            statistics=self.get_preference_statistics(),
            last_form=analysis.form if analysis is not None else None,
            structure_count=len(analysis.structures) if analysis is not None else 0,
            extras={"export_count": self.export_count},
        )

    def export(self) -> SessionSummary:
        """Snapshot the session, then reset its preferences."""
        self.export_count += 1
        summary = self.to_summary()
        self.clear_preferences()
        return summary


class SessionManager:
    """Tracks interactive sessions owned by the worker."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, payload: SessionCreateRequest) -> SessionSummary:
        session_id = f"session-{uuid4()}"
        now = datetime.now(tz=UTC)
        context = SessionContext(
            session_id=session_id,
            created_at=now,
            updated_at=now,
            name=payload.name,
        )
        async with self._lock:
            self._sessions[session_id] = context
        logger.info("Created session {}", session_id)
        return context.to_summary()

    async def session_exists(self, session_id: str) -> bool:
        async with self._lock:
            return session_id in self._sessions

    async def get_context(self, session_id: str) -> SessionContext:
        async with self._lock:
            context = self._sessions.get(session_id)
        if context is None:
            raise UnknownSessionError(session_id)
        return context

    async def store_analysis(self, session_id: str, analysis: AnalysisResult) -> None:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                raise UnknownSessionError(session_id)
            context.last_analysis = analysis
            context.touch()

    async def record_user_action(self, session_id: str, action: UserAction) -> PreferenceStatistics:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                raise UnknownSessionError(session_id)
            return context.record_user_action(action)

    async def clear_preferences(self, session_id: str) -> None:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                raise UnknownSessionError(session_id)
            context.clear_preferences()

    async def get_preference_statistics(self, session_id: str) -> PreferenceStatistics:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                raise UnknownSessionError(session_id)
            return context.get_preference_statistics()

    async def export(self, session_id: str) -> SessionSummary:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                raise UnknownSessionError(session_id)
            return context.export()

    async def get_summary(self, session_id: str) -> Optional[SessionSummary]:
        async with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return None
            return context.to_summary()

    async def all_summaries(self) -> list[SessionSummary]:
        async with self._lock:
            return [context.to_summary() for context in self._sessions.values()]
